"""End-to-end tests: a real listener on a loopback port, driven by RemoteClient."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from dirscope.client.remote import AuthenticationError, RemoteClient
from dirscope.config.settings import ServerConfig, Settings
from dirscope.domain.models import AuthOutcome
from dirscope.executors.scanner import ContentScanner
from dirscope.protocol.framing import IncompleteFrameError
from dirscope.server.listener import Listener, ListenerError


def client_for(listener: Listener) -> RemoteClient:
    return RemoteClient("127.0.0.1", listener.port, timeout=5.0)


class TestListener:
    @pytest.mark.asyncio
    async def test_register_traverse_search_inspect(self, settings: Settings, sample_tree: Path) -> None:
        root = str(sample_tree)
        async with Listener(settings) as listener:
            assert listener.is_serving
            assert listener.port != 0

            async with client_for(listener) as client:
                assert await client.login("alice", "secret") == AuthOutcome.REGISTERED

                report = await client.traverse(root)
                assert report.directories == [root, f"{root}/sub"]
                assert report.files == [f"{root}/a.txt", f"{root}/b.txt", f"{root}/sub/c.txt"]
                assert report.total == 3

                search = await client.search(root, "hello")
                assert search.matches == [f"{root}/a.txt", f"{root}/sub/c.txt"]
                assert search.listing.files == report.files

                assert await client.inspect(f"{root}/a.txt") == b"hello"

            async with client_for(listener) as client:
                assert await client.login("alice", "secret") == AuthOutcome.LOGGED_IN

            async with client_for(listener) as client:
                with pytest.raises(AuthenticationError, match="Incorrect password"):
                    await client.login("alice", "wrong")

        assert not listener.is_serving

    @pytest.mark.asyncio
    async def test_unknown_command_keeps_session_open(self, settings: Settings, sample_tree: Path) -> None:
        async with Listener(settings) as listener:
            async with client_for(listener) as client:
                await client.login("bob", "pw")
                assert await client.request("LIST /tmp") == b"ERROR: Unknown command\n"
                assert (await client.traverse(str(sample_tree))).total == 3

    @pytest.mark.asyncio
    async def test_concurrent_sessions_are_isolated(self, settings: Settings, tmp_path: Path) -> None:
        trees = {}
        for name, needle_files in (("u1", 2), ("u2", 5)):
            root = tmp_path / name
            root.mkdir()
            for i in range(needle_files):
                (root / f"f{i}.txt").write_text(f"needle {name}")
            (root / "other.txt").write_text("nothing")
            trees[name] = root

        async def session(user: str) -> list[str]:
            async with client_for(listener) as client:
                await client.login(user, "pw")
                results = []
                for _ in range(3):
                    report = await client.search(str(trees[user]), "needle")
                    results.append(len(report.matches))
                return results

        async with Listener(settings) as listener:
            first, second = await asyncio.gather(session("u1"), session("u2"))

        assert first == [2, 2, 2]
        assert second == [5, 5, 5]
        assert listener.sessions_started == 2

    @pytest.mark.asyncio
    async def test_session_crash_does_not_affect_others(
        self, settings: Settings, sample_tree: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def broken_scan(self, pattern: str) -> list[str]:
            raise RuntimeError("scanner exploded")

        monkeypatch.setattr(ContentScanner, "scan", broken_scan)

        async with Listener(settings) as listener:
            async with client_for(listener) as bystander:
                await bystander.login("bystander", "pw")

                async with client_for(listener) as victim:
                    await victim.login("victim", "pw")
                    with pytest.raises(IncompleteFrameError):
                        await victim.search(str(sample_tree), "hello")

                assert (await bystander.traverse(str(sample_tree))).total == 3

            async with client_for(listener) as newcomer:
                assert await newcomer.login("newcomer", "pw") == AuthOutcome.REGISTERED

            assert listener.is_serving

    @pytest.mark.asyncio
    async def test_shutdown_waits_for_live_sessions(self, settings: Settings, sample_tree: Path) -> None:
        listener = Listener(settings)
        await listener.start()
        port = listener.port

        client = client_for(listener)
        await client.connect()
        await client.login("alice", "pw")

        closing = asyncio.create_task(listener.close())
        await asyncio.sleep(0.1)
        assert not closing.done()
        assert listener.active_sessions == 1

        # No new connections once shutdown has begun
        with pytest.raises(ConnectionError):
            await RemoteClient("127.0.0.1", port, timeout=1.0).connect()

        # The live session keeps working until it ends on its own
        assert (await client.traverse(str(sample_tree))).total == 3
        await client.close()

        await asyncio.wait_for(closing, timeout=5.0)
        assert listener.active_sessions == 0
        assert not listener.is_serving

    @pytest.mark.asyncio
    async def test_serve_until_event(self, settings: Settings) -> None:
        listener = Listener(settings)
        shutdown = asyncio.Event()
        serving = asyncio.create_task(listener.serve_until(shutdown))
        await asyncio.sleep(0.05)
        assert listener.is_serving

        shutdown.set()
        await asyncio.wait_for(serving, timeout=5.0)
        assert not listener.is_serving

    @pytest.mark.asyncio
    async def test_port_in_use(self, settings: Settings) -> None:
        async with Listener(settings) as first:
            taken = settings.model_copy(
                update={"server": ServerConfig(host="127.0.0.1", port=first.port)}
            )
            with pytest.raises(ListenerError, match="Cannot listen"):
                await Listener(taken).start()

    @pytest.mark.asyncio
    async def test_start_twice(self, settings: Settings) -> None:
        async with Listener(settings) as listener:
            with pytest.raises(ListenerError):
                await listener.start()
