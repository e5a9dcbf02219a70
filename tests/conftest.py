from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import pytest

from hostpanel.config import Settings
from hostpanel.models.command import CommandResult
from hostpanel.services.certificate_manager import CertificateManager
from hostpanel.services.notifier import Notifier
from hostpanel.services.orchestrator import Orchestrator
from hostpanel.services.site_repository import SiteRepository
from hostpanel.services.system_state import SystemState

Matcher = Union[Tuple[str, ...], Callable[[List[str]], bool]]


class FakeExecutor:
    """
    Stands in for CommandExecutor: records every argument vector and answers
    with success unless a failure or canned output was registered for it.
    """

    def __init__(self):
        self.calls: List[List[str]] = []
        self._failures: List[Tuple[Matcher, CommandResult]] = []
        self._outputs: List[Tuple[Matcher, str]] = []

    @staticmethod
    def _matches(matcher: Matcher, argv: List[str]) -> bool:
        if callable(matcher):
            return matcher(argv)
        return tuple(argv[: len(matcher)]) == tuple(matcher)

    def fail(self, matcher: Matcher, stderr: str = "boom", exit_code: int = 1, timed_out: bool = False):
        self._failures.append(
            (
                matcher,
                CommandResult(
                    command=[],
                    stderr=stderr,
                    exit_code=-1 if timed_out else exit_code,
                    timed_out=timed_out,
                ),
            )
        )

    def output(self, matcher: Matcher, stdout: str):
        self._outputs.append((matcher, stdout))

    def run(self, command: Sequence[str], timeout: Optional[float] = None) -> CommandResult:
        argv = [str(part) for part in command]
        self.calls.append(argv)
        for matcher, result in self._failures:
            if self._matches(matcher, argv):
                return result.model_copy(update={"command": argv})
        stdout = ""
        for matcher, text in self._outputs:
            if self._matches(matcher, argv):
                stdout = text
        return CommandResult(command=argv, stdout=stdout, exit_code=0)

    def commands_starting_with(self, *prefix: str) -> List[List[str]]:
        return [argv for argv in self.calls if tuple(argv[: len(prefix)]) == prefix]

    def shutdown(self) -> None:
        pass


class RecordingSink:
    def __init__(self):
        self.events: List[Dict] = []

    def publish(self, event: Dict) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> List[Dict]:
        return [event for event in self.events if event["type"] == event_type]


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def notifier(sink) -> Notifier:
    return Notifier(sink)


@pytest.fixture
def nginx_dirs(tmp_path):
    available = tmp_path / "sites-available"
    enabled = tmp_path / "sites-enabled"
    conf = tmp_path / "nginx"
    for directory in (available, enabled, conf):
        directory.mkdir()
    return available, enabled, conf


@pytest.fixture
def repository(nginx_dirs, executor) -> SiteRepository:
    available, enabled, conf = nginx_dirs
    return SiteRepository(str(available), str(enabled), executor, nginx_conf_dir=str(conf))


@pytest.fixture
def settings(tmp_path, nginx_dirs) -> Settings:
    available, enabled, conf = nginx_dirs
    return Settings(
        sites_available_dir=str(available),
        sites_enabled_dir=str(enabled),
        nginx_conf_dir=str(conf),
        web_root=str(tmp_path / "www"),
        backup_location=str(tmp_path / "backups"),
        monitored_services=["nginx", "mysql"],
    )


@pytest.fixture
def state() -> SystemState:
    return SystemState(history_capacity=288)


@pytest.fixture
def certificates(executor, repository) -> CertificateManager:
    return CertificateManager(executor, repository)


@pytest.fixture
def orchestrator(settings, executor, repository, certificates, notifier, state) -> Orchestrator:
    return Orchestrator(
        settings=settings,
        executor=executor,
        sites=repository,
        certificates=certificates,
        notifier=notifier,
        state=state,
    )
