from .parser import parse_detect, DisplayRecord
from .runner import ProcessRunner, CommandResult
from ..config import CONFIG


BRIGHTNESS_VCP = "10"


class DdcUtil:
    def __init__(self, command: str | None = None, runner: ProcessRunner | None = None):
        self.command = command or CONFIG.ddcutil_command
        self.runner = runner or ProcessRunner()

    async def _run(self, args: list[str]) -> CommandResult:
        return await self.runner.run([self.command] + args)

    async def detect(self) -> list[DisplayRecord]:
        result = await self._run(["detect"])
        return parse_detect(result.output)

    async def set_vcp(self, code: str, value: int, bus_id: str) -> CommandResult:
        return await self._run(["setvcp", code, str(value), "--bus", bus_id])

    async def set_brightness(self, bus_id: str, level: int) -> CommandResult:
        return await self.set_vcp(BRIGHTNESS_VCP, level, bus_id)

    def close(self) -> None:
        self.runner.close()
