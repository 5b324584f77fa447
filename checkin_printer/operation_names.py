"""Centralized operation names understood by the local print daemon.

These names appear as the ``apiName`` field of every request, response and
push message exchanged over the daemon websocket:
    {"apiName": "<operation>", "parameter": {...}}

The spelling is the daemon's own (including ``DrawLableText``) and must not
be corrected.
"""

from __future__ import annotations


class OperationNames:
    """Daemon operation name constants."""

    # -------------------------------------------------------------------------
    # Device subsystem
    # -------------------------------------------------------------------------

    INIT_SDK = "initSdk"
    """Initialise the device subsystem with a font directory."""

    GET_ALL_PRINTERS = "getAllPrinters"
    """Enumerate attached printers as a JSON map of name -> port."""

    SELECT_PRINTER = "selectPrinter"
    """Bind the session to one printer by name and port."""

    # -------------------------------------------------------------------------
    # Drawing
    # -------------------------------------------------------------------------

    INIT_DRAWING_BOARD = "InitDrawingBoard"
    """Reset the drawing surface to the label dimensions."""

    DRAW_TEXT = "DrawLableText"
    """Draw one text box."""

    DRAW_QR_CODE = "DrawLableQrCode"
    """Draw one QR/barcode symbol."""

    # -------------------------------------------------------------------------
    # Job control
    # -------------------------------------------------------------------------

    START_JOB = "startJob"
    """Open a print job with density, label type, mode and copy count."""

    COMMIT_JOB = "commitJob"
    """Submit the composed label; completion is reported by push."""

    END_JOB = "endJob"
    """Close out the current job."""

    # -------------------------------------------------------------------------
    # Operation Sets
    # -------------------------------------------------------------------------

    SESSION_OPERATIONS = frozenset({INIT_SDK, GET_ALL_PRINTERS, SELECT_PRINTER})
    """Operations used while bringing a session up."""

    JOB_OPERATIONS = frozenset(
        {INIT_DRAWING_BOARD, DRAW_TEXT, DRAW_QR_CODE, START_JOB, COMMIT_JOB, END_JOB}
    )
    """Operations used while printing a label."""

    ALL = SESSION_OPERATIONS | JOB_OPERATIONS
    """Every operation the daemon protocol defines."""
