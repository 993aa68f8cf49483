"""Pytest configuration and fixtures."""

import asyncio
from datetime import datetime, timezone

import pytest

from threat_modeler.models import (
    AnalysisRecord,
    ApplicationType,
    DataClassification,
    StrideCategory,
    Threat,
    ThreatStatus,
)


class FakeTransport:
    """Scripted ModelTransport: replays responses (strings or exceptions) in order.

    The last response repeats once the script runs out. If ``gate`` is set,
    every call waits on it before answering.
    """

    def __init__(self, *responses, gate: asyncio.Event | None = None):
        self.responses = list(responses)
        self.calls: list[tuple[str, object]] = []
        self.gate = gate

    async def send(self, prompt, image=None):
        self.calls.append((prompt, image))
        if self.gate is not None:
            await self.gate.wait()

        index = min(len(self.calls), len(self.responses)) - 1
        response = self.responses[index]
        if isinstance(response, BaseException):
            raise response
        return response


class SleepRecorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def fake_transport():
    """Factory for scripted transports."""
    return FakeTransport


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def threats_payload() -> dict:
    """Structured threat-enumeration reply, as the model returns it."""
    return {
        "threats": [
            {
                "threat_id": "T-001",
                "threat_name": "Stolen session token",
                "stride_category": "Spoofing",
                "description": "An attacker replays a captured session token to impersonate a user.",
                "mitigation": "Bind tokens to the client and keep their lifetime short.",
            },
            {
                "threat_id": "T-002",
                "threat_name": "Verbose error pages",
                "stride_category": "Information_Disclosure",
                "description": "Stack traces reveal framework versions and internal paths.",
                "mitigation": "Return generic errors and log details server-side.",
            },
        ]
    }


@pytest.fixture
def threats_reply(threats_payload: dict) -> str:
    """Model reply with the JSON object wrapped in prose and a code fence."""
    import json

    return "Here is the threat model:\n```json\n" + json.dumps(threats_payload) + "\n```\nLet me know if you need more."


@pytest.fixture
def sample_record() -> AnalysisRecord:
    """Completed analysis with no image and one pending, one accepted threat."""
    return AnalysisRecord(
        id="rec-1",
        title="Payments API",
        app_type=ApplicationType.API,
        data_classification=DataClassification.PCI_DSS,
        description="Card payments gateway.\nTalks to the acquiring bank.\nStores tokens in Postgres.",
        ai_description="A REST API that accepts card payments and forwards them to a bank.",
        dfd_description="Client -> API Gateway -> Payments Service -> Token Vault (Postgres).",
        threats=[
            Threat(
                threat_id="T-001",
                threat_name="Stolen session token",
                stride_category=StrideCategory.SPOOFING,
                description="An attacker replays a captured session token.",
                mitigation="Bind tokens to the client.",
            ),
            Threat(
                threat_id="T-002",
                threat_name="Verbose error pages",
                stride_category=StrideCategory.INFORMATION_DISCLOSURE,
                description="Stack traces reveal internals.",
                mitigation="Return generic errors.",
                status=ThreatStatus.ACCEPTED,
            ),
        ],
        created_at=datetime(2024, 10, 15, 9, 30, tzinfo=timezone.utc),
    )
