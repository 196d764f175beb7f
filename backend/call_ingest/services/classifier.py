from typing import Optional

from ..models.db_models import CALL_TYPE_BATCH, CALL_TYPE_IN_APP, PROVIDER_BATCH, PROVIDER_IN_APP
from ..schemas.pydantic_schemas import CallType


def classify_call_type(agent_id: Optional[str], batch_agent_id: str, in_app_agent_id: str) -> CallType:
    if agent_id and agent_id == in_app_agent_id:
        return CallType.IN_APP
    if agent_id and agent_id == batch_agent_id:
        return CallType.BATCH
    return CallType.UNKNOWN


def provider_for(call_type: CallType) -> str:
    # In-app calls are logged under the same provider tag the device-call flow uses.
    return PROVIDER_IN_APP if call_type == CallType.IN_APP else PROVIDER_BATCH


def log_call_type(call_type: CallType) -> str:
    return CALL_TYPE_IN_APP if call_type == CallType.IN_APP else CALL_TYPE_BATCH
