from typing import Optional

from ..schemas.pydantic_schemas import CallOutcome

# Connection status only. A completed call counts as answered whether or not
# the post-call evaluation criteria passed.
ANSWERED = {"done", "success", "successful", "completed", "ok"}
MISSED = {"cancelled", "canceled", "hangup", "hang-up", "no_answer"}
BUSY = {"busy"}


def normalize_outcome(raw: Optional[str]) -> CallOutcome:
    v = str(raw or "").strip().lower()
    if v in ANSWERED:
        return CallOutcome.ANSWERED
    if v in MISSED:
        return CallOutcome.MISSED
    if v in BUSY:
        return CallOutcome.BUSY
    # "error", "failed", "timeout" and anything unrecognised
    return CallOutcome.FAILED
