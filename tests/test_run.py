"""
Tests for the server entry point.
"""
import uvicorn

import run


class TestEntryPoint:

    def test_defaults(self):
        args = run.parse_args([])
        assert (args.host, args.port, args.reload, args.cli) == ("127.0.0.1", 8000, True, False)

    def test_host_and_port_reach_uvicorn(self, monkeypatch, capsys):
        calls = []
        monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))

        run.main(["--host", "0.0.0.0", "--port", "9000", "--no-reload"])
        assert calls == [("parkval.web.server:app", {"host": "0.0.0.0", "port": 9000, "reload": False})]
        assert "http://0.0.0.0:9000" in capsys.readouterr().out
