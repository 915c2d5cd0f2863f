from dataclasses import dataclass, field
from typing import Dict, Tuple

from flask import current_app

from codeduel.services.execution import Judge0Client
from codeduel.services.matches.join_codes import JoinCodeBroker
from codeduel.services.matches.presence import MatchPresenceTable, PresenceCoordinator
from codeduel.services.matches.registry import ConnectionRegistry
from codeduel.services.matches.submissions import SubmissionPipeline

EXTENSION_KEY = 'codeduel'


@dataclass
class MatchServices:
    registry: ConnectionRegistry
    presence: MatchPresenceTable
    coordinator: PresenceCoordinator
    join_codes: JoinCodeBroker
    judge: object
    # socket sid -> (participant id, channel) for connections held by this app
    sockets: Dict[str, Tuple[str, object]] = field(default_factory=dict)

    def submission_pipeline(self, config):
        return SubmissionPipeline(
            self.judge,
            max_wait=float(config.get('JUDGE_MAX_WAIT_SEC', 30)),
            poll_interval=float(config.get('JUDGE_POLL_INTERVAL_SEC', 1)),
            on_match_completed=self.coordinator.notify_match_completed,
        )


def init_services(app, judge=None):
    registry = ConnectionRegistry()
    presence = MatchPresenceTable()
    services = MatchServices(
        registry=registry,
        presence=presence,
        coordinator=PresenceCoordinator(registry, presence),
        join_codes=JoinCodeBroker(
            ttl_sec=int(app.config.get('JOIN_CODE_TTL_SEC', 1800)),
            code_length=int(app.config.get('JOIN_CODE_LENGTH', 6)),
        ),
        judge=judge or Judge0Client.from_config(app.config),
    )
    app.extensions[EXTENSION_KEY] = services
    return services


def get_services() -> MatchServices:
    return current_app.extensions[EXTENSION_KEY]
