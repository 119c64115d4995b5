from fastapi import APIRouter

from koronet.core.dependencies import SettingsDep, utc_timestamp
from koronet.schemas.health import RootResponse

router = APIRouter()

GREETING = "Hi Koronet Team."


@router.get("/", response_model=RootResponse)
async def root(settings: SettingsDep):
    return RootResponse(message=GREETING, timestamp=utc_timestamp(), environment=settings.environment)
