from ingest.models import LiveGame, LivePlayer


class TestLiveGame:
    def test_from_live_head(self):
        raw = {
            "uuid": "250101-a",
            "start_time": 1735700000,
            "game_config": {"meta": {"mode_id": 12}},
            "players": [
                {"account_id": 31, "nickname": "east", "level": {"id": 10301}},
                {"account_id": 42, "nickname": "south"},
            ],
            "seat_list": [42, 31, 0, 0],
        }

        game = LiveGame.from_live_head(raw)

        assert game.uuid == "250101-a"
        assert game.start_time == 1735700000
        assert game.mode_id == 12
        assert game.players == [
            LivePlayer(account_id=42, nickname="south"),
            LivePlayer(account_id=31, nickname="east", level=10301),
            LivePlayer(account_id=0),
            LivePlayer(account_id=0),
        ]

    def test_minimal_head(self):
        game = LiveGame.from_live_head({"uuid": "250101-a"})

        assert game == LiveGame(uuid="250101-a")

    def test_dump_keeps_uuid(self):
        dumped = LiveGame(uuid="250101-a", players=[LivePlayer(account_id=1)]).model_dump()

        assert dumped["uuid"] == "250101-a"
        assert dumped["players"] == [{"account_id": 1, "nickname": "", "level": 0}]
