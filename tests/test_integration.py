"""Integration tests for end-to-end workflow."""

import json

import responses
from click.testing import CliRunner

from watch_merge.cli import cli
from watch_merge.config import Config
from watch_merge.storage import DataStore

BASE = "https://records.example.com/api"


class TestEndToEndWorkflow:
    """Test complete setup -> pull -> track -> push workflow."""

    @responses.activate
    def test_full_workflow(self, tmp_path):
        """Complete workflow: remote-setup, pull, track, push, export."""
        runner = CliRunner()
        env = {"WATCH_MERGE_DATA_DIR": str(tmp_path)}

        # 1. Setup
        responses.add(responses.GET, f"{BASE}/users/user456", json={"id": "user456"}, status=200)

        result = runner.invoke(
            cli,
            ["remote-setup"],
            input=f"{BASE}\nuser456\ntoken123\n",
            env=env,
        )
        assert result.exit_code == 0
        assert "Setup complete" in result.output

        config = Config(data_dir=tmp_path)
        config.load()
        assert config.remote_configured

        # 2. Pull remote collections
        responses.add(
            responses.GET,
            f"{BASE}/users/user456/watchHistory",
            json=[
                {"id": "r1", "media_id": 1396, "media_type": "tv", "title": "Breaking Bad",
                 "season": 1, "episode": 1, "watch_position": 2800, "duration": 2800,
                 "created_at": "2024-03-01T21:00:00Z"},
                {"id": "r2", "media_id": 1396, "media_type": "tv", "title": "Breaking Bad",
                 "season": 1, "episode": 2, "watch_position": 100, "duration": 2800,
                 "created_at": "2024-03-02T21:00:00Z"},
            ],
            status=200,
        )
        responses.add(
            responses.GET,
            f"{BASE}/users/user456/favorites",
            json={"items": [{"id": "f1", "media_id": 550, "media_type": "movie",
                             "added_at": "2024-01-01T00:00:00Z"}]},
            status=200,
        )
        responses.add(responses.GET, f"{BASE}/users/user456/watchlist", json=[], status=200)

        result = runner.invoke(cli, ["pull"], env=env)
        assert result.exit_code == 0, result.output

        collections = DataStore(data_dir=tmp_path).load_collections()
        assert len(collections.watch_history) == 1
        show = collections.watch_history[0]
        assert show.id == "r1"
        assert show.user_id == "user456"
        assert [(e.season, e.episode) for e in show.episodes_watched] == [(1, 1), (1, 2)]
        assert (show.season, show.episode) == (1, 2)

        # 3. Track live progress on the next episode
        result = runner.invoke(
            cli,
            ["track", "tv", "1396", "--season", "1", "--episode", "3",
             "--position", "300", "--duration", "2800"],
            env=env,
        )
        assert result.exit_code == 0

        # 4. Push everything back
        responses.add(responses.PUT, f"{BASE}/users/user456/watchHistory/r1", status=204)
        responses.add(responses.PUT, f"{BASE}/users/user456/favorites/f1", status=204)

        result = runner.invoke(cli, ["push"], env=env)
        assert result.exit_code == 0, result.output
        assert "Pushed to records API" in result.output

        pushed = [c for c in responses.calls if c.request.method == "PUT"]
        history_body = json.loads(pushed[0].request.body)
        assert history_body["episode"] == 3
        assert len(history_body["episodes_watched"]) == 3

        # 5. Export and re-import into a fresh directory
        backup_path = tmp_path / "backup.json"
        result = runner.invoke(cli, ["export", "--output", str(backup_path)], env=env)
        assert result.exit_code == 0

        fresh_env = {"WATCH_MERGE_DATA_DIR": str(tmp_path / "fresh")}
        result = runner.invoke(cli, ["import", str(backup_path)], env=fresh_env)
        assert result.exit_code == 0

        restored = DataStore(data_dir=tmp_path / "fresh").load_collections()
        assert restored.watch_history == DataStore(data_dir=tmp_path).load_collections().watch_history

    def test_pull_without_config(self, tmp_path):
        runner = CliRunner()
        result = runner.invoke(cli, ["pull"], env={"WATCH_MERGE_DATA_DIR": str(tmp_path)})

        assert result.exit_code == 1
        assert "not found" in result.output

    @responses.activate
    def test_pull_auth_failure(self, tmp_path):
        config = Config(data_dir=tmp_path)
        config.set_remote_credentials(BASE, "user456", "expired")
        config.save()
        responses.add(responses.GET, f"{BASE}/users/user456/watchHistory", status=401)

        runner = CliRunner()
        result = runner.invoke(cli, ["pull"], env={"WATCH_MERGE_DATA_DIR": str(tmp_path)})

        assert result.exit_code == 2
        assert "expired or invalid" in result.output

    @responses.activate
    def test_push_failure(self, tmp_path):
        config = Config(data_dir=tmp_path)
        config.set_remote_credentials(BASE, "user456", "token")
        config.save()
        runner = CliRunner()
        env = {"WATCH_MERGE_DATA_DIR": str(tmp_path)}
        runner.invoke(cli, ["track", "movie", "550", "--position", "60", "--duration", "100"], env=env)
        responses.add(responses.PUT, f"{BASE}/users/user456/watchHistory/movie-550", status=500)

        result = runner.invoke(cli, ["push"], env=env)

        assert result.exit_code == 3
        assert "Push failed" in result.output

    @responses.activate
    def test_remote_setup_connection_failure(self, tmp_path):
        responses.add(responses.GET, f"{BASE}/users/user456", status=401)

        runner = CliRunner()
        result = runner.invoke(
            cli,
            ["remote-setup"],
            input=f"{BASE}\nuser456\nbad\n",
            env={"WATCH_MERGE_DATA_DIR": str(tmp_path)},
        )

        assert result.exit_code == 2
        assert not (tmp_path / "config.yaml").exists()
