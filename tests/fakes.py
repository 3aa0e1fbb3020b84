"""Test doubles shared by the test modules."""

from typing import Callable, Dict, List, Optional, Sequence, Tuple

from services.runner import CommandResult, CommandRunner

STATUS_OUTPUT = """Status for the jail: opensips-brute-force
|- Filter
|  |- Currently failed:\t3
|  |- Total failed:\t57
|  `- File list:\t/var/log/opensips.log
`- Actions
   |- Currently banned:\t2
   |- Total banned:\t11
   `- Banned IP list:\t203.0.113.5 198.51.100.7
"""


class FakeRunner(CommandRunner):
    """
    Records commands and answers from a table of responses.

    Responses are matched on the longest command prefix; anything
    unmatched gets ``default``.
    """

    def __init__(self, responses: Optional[Dict[Tuple[str, ...], CommandResult]] = None,
                 default: CommandResult = CommandResult(0, "", "")):
        self.responses = dict(responses or {})
        self.default = default
        self.calls: List[dict] = []
        self.hook: Optional[Callable[[Sequence[str]], None]] = None

    def respond(self, prefix: Sequence[str], exit_code: int = 0, stdout: str = "", stderr: str = "") -> None:
        self.responses[tuple(prefix)] = CommandResult(exit_code, stdout, stderr)

    def run(self, command, env=None, timeout=None) -> CommandResult:
        self.calls.append({"command": list(command), "env": env, "timeout": timeout})
        if self.hook:
            self.hook(command)
        best = None
        for prefix, result in self.responses.items():
            if tuple(command[:len(prefix)]) == prefix and (best is None or len(prefix) > len(best[0])):
                best = (prefix, result)
        return best[1] if best else self.default

    def commands(self) -> List[List[str]]:
        return [c["command"] for c in self.calls]


def running_runner(status_stdout: str = STATUS_OUTPUT) -> FakeRunner:
    """Runner for a healthy fail2ban with the given status output."""
    runner = FakeRunner()
    runner.respond(["systemctl", "is-active"], 0, "active\n")
    runner.respond(["fail2ban-client", "status"], 0, status_stdout)
    return runner
