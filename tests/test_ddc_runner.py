import asyncio
import sys
import unittest
from unittest import mock
from ddc_panel.ddc.reader import iter_lines, read_lines
from ddc_panel.ddc import reader
from ddc_panel.ddc.runner import CommandResult, ProcessRunner


class _FailingStream:
    def __init__(self, lines: list[bytes]):
        self._lines = list(lines)

    async def readline(self) -> bytes:
        if self._lines:
            return self._lines.pop(0)
        raise OSError("pipe broke")

    async def read(self, n: int = -1) -> bytes:
        raise OSError("pipe broke")


def _stream(data: bytes, limit: int = 2 ** 16) -> asyncio.StreamReader:
    stream = asyncio.StreamReader(limit=limit)
    stream.feed_data(data)
    stream.feed_eof()
    return stream


class TestLineReader(unittest.IsolatedAsyncioTestCase):
    async def test_reads_lines_in_order(self):
        lines = []
        count = await read_lines(_stream(b"one\r\ntwo\nthree"), lines.append)
        self.assertEqual(count, 3)
        self.assertEqual(lines, ["one", "two", "three"])

    async def test_invalid_utf8_is_replaced(self):
        lines = [line async for line in iter_lines(_stream(b"caf\xe9\n"))]
        self.assertEqual(lines, ["caf\ufffd"])

    async def test_read_error_ends_stream(self):
        lines = []
        with self.assertLogs("ddc_panel.ddc.reader", level="WARNING"):
            count = await read_lines(_FailingStream([b"partial\n"]), lines.append)
        self.assertEqual(count, 1)
        self.assertEqual(lines, ["partial"])

    async def test_oversized_line_ends_stream(self):
        lines = []
        with self.assertLogs("ddc_panel.ddc.reader", level="WARNING"):
            await read_lines(_stream(b"x" * 64 + b"\n", limit=8), lines.append)
        self.assertEqual(lines, [])

    async def test_missing_stream_reads_nothing(self):
        self.assertEqual(await read_lines(None, lambda line: None), 0)

    async def test_rest_of_stream_is_discarded_after_oversized_line(self):
        stream = _stream(b"first\n" + b"x" * 64 + b"\n" + b"after\n" * 10, limit=16)
        lines = []
        with self.assertLogs("ddc_panel.ddc.reader", level="WARNING"):
            await read_lines(stream, lines.append)
        self.assertEqual(lines, ["first"])
        self.assertTrue(stream.at_eof())


class TestProcessRunner(unittest.IsolatedAsyncioTestCase):
    async def test_captures_stdout_and_stderr(self):
        script = "import sys; print('I2C bus: /dev/i2c-3'); print('Model: X'); sys.stderr.write('warn\\n')"
        completed = []
        runner = ProcessRunner()
        with self.assertLogs("ddc_panel.ddc.runner", level="WARNING"):
            result = await runner.run([sys.executable, "-c", script], on_complete=completed.append)
        self.assertTrue(result.ok)
        self.assertEqual(result.exit_code, 0)
        self.assertEqual(result.stdout, ["I2C bus: /dev/i2c-3", "Model: X"])
        self.assertEqual(result.stderr, ["warn"])
        self.assertEqual(result.output, "I2C bus: /dev/i2c-3\nModel: X")
        self.assertEqual(completed, [result])
        self.assertEqual(runner.inflight, 0)

    async def test_stdout_is_drained_before_stderr(self):
        script = (
            "import sys; "
            "sys.stderr.write('err-1\\nerr-2\\n'); sys.stderr.flush(); "
            "print('out-1'); print('out-2')"
        )
        order = []

        async def recording_read_lines(stream, on_line):
            def record(line):
                order.append(line)
                on_line(line)
            return await reader.read_lines(stream, record)

        with mock.patch("ddc_panel.ddc.runner.read_lines", new=recording_read_lines):
            with self.assertLogs("ddc_panel.ddc.runner", level="WARNING"):
                result = await ProcessRunner().run([sys.executable, "-c", script])
        self.assertEqual(order, ["out-1", "out-2", "err-1", "err-2"])
        self.assertEqual(result.stderr, ["err-1", "err-2"])

    async def test_oversized_line_does_not_stall_the_child(self):
        script = (
            "import sys; "
            "print('first'); "
            "print('x' * 70000); "
            "sys.stdout.write('I2C bus: /dev/i2c-1\\n' * 40000); "
            "sys.stdout.flush(); "
            "sys.stderr.write('done\\n')"
        )
        with self.assertLogs("ddc_panel.ddc.reader", level="WARNING"):
            result = await asyncio.wait_for(
                ProcessRunner().run([sys.executable, "-c", script]), timeout=30
            )
        self.assertTrue(result.ok)
        self.assertEqual(result.exit_code, 0)
        self.assertEqual(result.stdout, ["first"])
        self.assertEqual(result.stderr, ["done"])

    async def test_nonzero_exit_is_reported(self):
        script = "import sys; sys.stderr.write('no monitor\\n'); sys.exit(3)"
        with self.assertLogs("ddc_panel.ddc.runner", level="WARNING"):
            result = await ProcessRunner().run([sys.executable, "-c", script])
        self.assertFalse(result.ok)
        self.assertEqual(result.exit_code, 3)
        self.assertEqual(result.error, "no monitor")

    async def test_stdin_is_not_inherited(self):
        script = "import sys; print(repr(sys.stdin.read()))"
        result = await ProcessRunner().run([sys.executable, "-c", script])
        self.assertEqual(result.stdout, ["''"])

    async def test_spawn_failure_completes_with_empty_output(self):
        completed = []
        with self.assertLogs("ddc_panel.ddc.runner", level="ERROR"):
            result = await ProcessRunner().run(["ddc-panel-missing-command"], on_complete=completed.append)
        self.assertIsInstance(result, CommandResult)
        self.assertFalse(result.ok)
        self.assertIsNone(result.exit_code)
        self.assertEqual(result.output, "")
        self.assertEqual(result.stderr, [])
        self.assertIsNotNone(result.error)
        self.assertEqual(completed, [result])

    async def test_empty_command_is_a_spawn_failure(self):
        with self.assertLogs("ddc_panel.ddc.runner", level="ERROR"):
            result = await ProcessRunner().run([])
        self.assertFalse(result.ok)
        self.assertEqual(result.output, "")

    async def test_completion_callback_errors_are_logged(self):
        def boom(result):
            raise RuntimeError("callback failed")

        with self.assertLogs("ddc_panel.ddc.runner", level="ERROR") as logs:
            result = await ProcessRunner().run([sys.executable, "-c", "print('ok')"], on_complete=boom)
        self.assertTrue(result.ok)
        self.assertTrue(any("completion callback" in line for line in logs.output))


if __name__ == "__main__":
    unittest.main()
