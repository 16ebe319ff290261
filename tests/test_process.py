import asyncio
import sys
import unittest
from unittest import mock
from unittest.mock import AsyncMock

from nqinstall.errors import ProcessFailed
from nqinstall.process import ProcessOutcome, ProcessSupervisor


class _FakeStream:
    def __init__(self, items: list) -> None:
        self._items = list(items)

    async def readline(self) -> bytes:
        if not self._items:
            return b""
        item = self._items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class _FakeProcess:
    def __init__(self, stdout: _FakeStream, stderr: _FakeStream, returncode: int) -> None:
        self.stdin = None
        self.stdout = stdout
        self.stderr = stderr
        self._returncode = returncode
        self.waited = False

    async def wait(self) -> int:
        self.waited = True
        return self._returncode

    def kill(self) -> None:
        pass


class ProcessSupervisorTests(unittest.IsolatedAsyncioTestCase):
    async def test_collects_both_streams(self) -> None:
        seen: list[tuple[str, str]] = []
        script = "import sys; print('out'); sys.stdout.flush(); print('err', file=sys.stderr)"
        outcome = await ProcessSupervisor().run(
            sys.executable, ["-c", script], on_line=lambda stream, line: seen.append((stream, line))
        )
        self.assertTrue(outcome.success)
        self.assertIn(("stdout", "out"), seen)
        self.assertIn(("stderr", "err"), seen)
        self.assertEqual(sorted(outcome.lines), ["err", "out"])

    async def test_lines_arrive_in_emission_order(self) -> None:
        seen: list[tuple[str, str]] = []
        script = (
            "import sys, time\n"
            "for i, stream in enumerate([sys.stdout, sys.stderr, sys.stdout, sys.stderr]):\n"
            "    print('line%d' % i, file=stream); stream.flush(); time.sleep(0.2)\n"
        )
        outcome = await ProcessSupervisor().run(
            sys.executable, ["-c", script], on_line=lambda stream, line: seen.append((stream, line))
        )
        self.assertTrue(outcome.success)
        self.assertEqual(
            seen,
            [("stdout", "line0"), ("stderr", "line1"), ("stdout", "line2"), ("stderr", "line3")],
        )
        self.assertEqual(outcome.lines, ["line0", "line1", "line2", "line3"])

    async def test_over_long_line_does_not_stall_the_child(self) -> None:
        script = (
            "import sys\n"
            "sys.stdout.write('x' * 200000 + '\\n')\n"
            "for i in range(20000): sys.stdout.write('filler %05d ' % i + 'y' * 90 + '\\n')\n"
            "print('done')\n"
        )
        outcome = await asyncio.wait_for(
            ProcessSupervisor().run(sys.executable, ["-c", script]), timeout=60
        )
        self.assertTrue(outcome.success)
        self.assertEqual(outcome.lines[-1], "done")
        self.assertTrue(any("over-long line on stdout" in w for w in outcome.warnings))

    async def test_read_error_ends_one_reader_and_exit_status_is_kept(self) -> None:
        proc = _FakeProcess(
            stdout=_FakeStream([b"first\n", OSError("pipe broke"), b"never seen\n"]),
            stderr=_FakeStream([b"warming up\n", b"still going\n"]),
            returncode=5,
        )
        seen: list[tuple[str, str]] = []
        with mock.patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            outcome = await ProcessSupervisor().run(
                "docker", ["compose", "up"], on_line=lambda stream, line: seen.append((stream, line))
            )
        self.assertEqual(outcome.returncode, 5)
        self.assertTrue(proc.waited)
        self.assertIn(("stderr", "still going"), seen)
        self.assertNotIn(("stdout", "never seen"), seen)
        self.assertEqual(outcome.warnings, ["Error reading stdout: pipe broke"])

    async def test_non_zero_exit(self) -> None:
        script = "import sys; print('bad thing'); sys.exit(3)"
        outcome = await ProcessSupervisor().run(sys.executable, ["-c", script])
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.returncode, 3)
        with self.assertRaises(ProcessFailed) as ctx:
            outcome.raise_for_status()
        self.assertEqual(ctx.exception.returncode, 3)
        self.assertIn("bad thing", ctx.exception.output)

    async def test_stdin_data_is_delivered(self) -> None:
        script = "import sys; print(sys.stdin.read().strip().upper())"
        outcome = await ProcessSupervisor().run(sys.executable, ["-c", script], stdin_data="secret\n")
        self.assertEqual(outcome.lines, ["SECRET"])

    async def test_env_overrides_are_visible(self) -> None:
        script = "import os; print(os.environ['NQINSTALL_TEST_VALUE'])"
        outcome = await ProcessSupervisor().run(
            sys.executable, ["-c", script], env={"NQINSTALL_TEST_VALUE": "42"}
        )
        self.assertEqual(outcome.lines, ["42"])

    async def test_missing_binary_raises_with_no_returncode(self) -> None:
        with self.assertRaises(ProcessFailed) as ctx:
            await ProcessSupervisor().run("nqinstall-definitely-missing-binary")
        self.assertIsNone(ctx.exception.returncode)

    async def test_keep_lines_bounds_captured_output(self) -> None:
        script = "for i in range(50): print(i)"
        outcome = await ProcessSupervisor(keep_lines=10).run(sys.executable, ["-c", script])
        self.assertEqual(len(outcome.lines), 10)
        self.assertEqual(outcome.lines[-1], "49")


class ProcessOutcomeTests(unittest.TestCase):
    def test_tail_skips_blank_lines(self) -> None:
        outcome = ProcessOutcome("cmd", 1, lines=["a", "", "b", "c"])
        self.assertEqual(outcome.tail(3), "b\nc")


if __name__ == "__main__":
    unittest.main()
