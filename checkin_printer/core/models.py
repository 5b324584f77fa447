"""Wire-level models exchanged with the print daemon."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .. import constants


@dataclass(frozen=True, slots=True)
class DaemonRequest:
    api_name: str
    parameter: Optional[Mapping[str, Any]] = None

    def to_message(self) -> dict[str, Any]:
        message: dict[str, Any] = {"apiName": self.api_name}
        if self.parameter is not None:
            message["parameter"] = dict(self.parameter)
        return message


@dataclass(frozen=True, slots=True)
class DaemonResponse:
    """A response or push message, or a synthetic failure standing in for one."""

    api_name: str
    error_code: int
    info: str = ""
    result_ack: Mapping[str, Any] = field(default_factory=dict)
    synthetic: bool = False

    @property
    def ok(self) -> bool:
        return self.error_code == 0

    @property
    def print_copies(self) -> int:
        return _as_int(self.result_ack.get("printCopies"))

    @property
    def print_pages(self) -> int:
        return _as_int(self.result_ack.get("printPages"))

    def info_json(self) -> Any:
        """Decode ``info`` as JSON; raises ``ValueError`` when it is not JSON."""

        return json.loads(self.info)

    @classmethod
    def failure(cls, api_name: str, error_code: int, info: str) -> "DaemonResponse":
        return cls(
            api_name=api_name,
            error_code=error_code,
            info=info,
            result_ack={"errorCode": error_code, "info": info},
            synthetic=True,
        )

    @classmethod
    def from_message(cls, message: Mapping[str, Any]) -> "DaemonResponse":
        """Build a response from a decoded daemon message.

        Raises:
            ValueError: If the message carries no usable ``apiName``.
        """

        api_name = message.get("apiName")
        if not isinstance(api_name, str) or not api_name:
            raise ValueError("Daemon message has no apiName")

        result_ack = message.get("resultAck")
        if not isinstance(result_ack, Mapping):
            return cls(
                api_name=api_name,
                error_code=constants.ERROR_INVALID_RESPONSE,
                info="Daemon message has no resultAck",
            )

        try:
            error_code = int(result_ack.get("errorCode"))
        except (TypeError, ValueError):
            error_code = constants.ERROR_INVALID_RESPONSE

        info = result_ack.get("info")
        if info is None:
            info_text = ""
        elif isinstance(info, str):
            info_text = info
        else:
            info_text = json.dumps(info)

        return cls(
            api_name=api_name,
            error_code=error_code,
            info=info_text,
            result_ack=dict(result_ack),
        )


@dataclass(frozen=True, slots=True)
class DaemonCapabilities:
    """Operations the connected daemon answers, determined once at connect time."""

    endpoint: str
    operations: frozenset[str]

    def supports(self, api_name: str) -> bool:
        return api_name in self.operations

    def missing(self, api_names: frozenset[str]) -> frozenset[str]:
        return frozenset(api_names - self.operations)


@dataclass(frozen=True, slots=True)
class PrinterDevice:
    name: str
    port: int

    def as_dict(self) -> dict[str, Any]:
        return {"name": self.name, "port": self.port}


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
