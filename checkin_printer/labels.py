"""Badge content and label layout.

Coordinates and sizes are millimetres on the physical label. Text boxes are
stacked top to bottom from the margin; when a QR code is printed it takes a
square on the left edge and the text column moves to its right.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from . import constants
from .config import LabelConfig
from .operation_names import OperationNames

NOT_AVAILABLE = "N/A"


@dataclass(slots=True)
class Participant:
    id: str
    staff_id: str
    first_name: str
    last_name: str
    title: str = ""
    email: str = ""
    post: str = ""
    department: str = ""
    attended: bool = False

    @property
    def display_name(self) -> str:
        return " ".join(
            part for part in (self.title, self.first_name, self.last_name) if part
        )

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Participant":
        return cls(
            id=str(record.get("id") or ""),
            staff_id=str(record.get("staff_id") or ""),
            first_name=str(record.get("first_name") or ""),
            last_name=str(record.get("last_name") or ""),
            title=str(record.get("title") or ""),
            email=str(record.get("email") or ""),
            post=str(record.get("post") or ""),
            department=str(record.get("department") or ""),
            attended=bool(record.get("attended", False)),
        )


@dataclass(frozen=True, slots=True)
class BadgeContent:
    """Display fields for one badge; lives only for the duration of a print."""

    name: str
    identifier: str
    department: str = ""
    position: str = ""
    qr_value: Optional[str] = None

    @classmethod
    def from_participant(cls, participant: Participant) -> "BadgeContent":
        return cls(
            name=participant.display_name,
            identifier=participant.staff_id,
            department=participant.department,
            position=participant.post,
            qr_value=participant.id or None,
        )


@dataclass(frozen=True, slots=True)
class DrawElement:
    operation: str
    parameter: Dict[str, Any]
    label: str


SAMPLE_BADGE = BadgeContent(
    name="Mr. John Doe",
    identifier="SAMPLE",
    department="IT Department",
    position="Software Engineer",
)


def drawing_board_parameters(config: LabelConfig) -> Dict[str, Any]:
    return {
        "width": config.paper_width_mm,
        "height": config.paper_height_mm,
        "rotate": 0,
        "path": config.font_file,
        "verticalShift": 0,
        "HorizontalShift": 0,
    }


def build_badge_elements(badge: BadgeContent, config: LabelConfig) -> List[DrawElement]:
    """Return the draw calls for ``badge`` in the order they must be issued."""

    margin = config.margin_mm
    qr_value = badge.qr_value if config.include_qr else None

    if qr_value:
        qr_size = config.paper_height_mm - margin * 2
        text_x = margin * 2 + qr_size
        text_width = config.paper_width_mm - qr_size - margin * 3
        align = 0
    else:
        qr_size = 0.0
        text_x = margin
        text_width = config.paper_width_mm - margin * 2
        align = 1

    rows: List[tuple[str, str, float]] = []
    if config.show_event_name and config.event_name:
        rows.append(("event", config.event_name, config.event_font_size))
    rows.append(
        (
            "name",
            _prefixed(config.show_name_prefix, config.name_prefix, badge.name),
            config.name_font_size,
        )
    )
    rows.append(
        (
            "identifier",
            f"{config.identifier_prefix}{badge.identifier}",
            config.identifier_font_size,
        )
    )
    rows.append(
        (
            "department",
            _prefixed(
                config.show_department_prefix,
                config.department_prefix,
                badge.department or NOT_AVAILABLE,
            ),
            config.department_font_size,
        )
    )
    if config.include_position:
        rows.append(
            (
                "position",
                _prefixed(
                    config.show_position_prefix,
                    config.position_prefix,
                    badge.position or NOT_AVAILABLE,
                ),
                config.position_font_size,
            )
        )

    elements: List[DrawElement] = []
    y = margin
    for label, value, font_size in rows:
        box_height = round(font_size * config.line_spacing + 1.0, 2)
        elements.append(
            DrawElement(
                operation=OperationNames.DRAW_TEXT,
                parameter=_text_parameters(
                    config,
                    x=text_x,
                    y=y,
                    width=text_width,
                    height=box_height,
                    value=value,
                    font_size=font_size,
                    align=align,
                ),
                label=label,
            )
        )
        y = round(y + box_height, 2)

    if qr_value:
        elements.append(
            DrawElement(
                operation=OperationNames.DRAW_QR_CODE,
                parameter={
                    "x": margin,
                    "y": margin,
                    "height": qr_size,
                    "width": qr_size,
                    "value": qr_value,
                    "codeType": constants.QR_CODE_TYPE,
                    "rotate": 0,
                },
                label="qr",
            )
        )

    return elements


def _prefixed(enabled: bool, prefix: str, value: str) -> str:
    return f"{prefix}{value}" if enabled and prefix else value


def _text_parameters(
    config: LabelConfig,
    *,
    x: float,
    y: float,
    width: float,
    height: float,
    value: str,
    font_size: float,
    align: int,
) -> Dict[str, Any]:
    # Key spellings (textAlignHorizonral) are the daemon's.
    return {
        "x": x,
        "y": y,
        "height": height,
        "width": width,
        "value": value,
        "fontFamily": config.font_family,
        "rotate": 0,
        "fontSize": font_size,
        "textAlignHorizonral": align,
        "textAlignVertical": 1,
        "letterSpacing": 0.0,
        "lineSpacing": config.line_spacing,
        "lineMode": 6,  # fixed box, auto-scaled text
        "fontStyle": [False, False, False, False],
    }
