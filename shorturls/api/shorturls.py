from fastapi import APIRouter, Depends, Request, status

from ..schemas import ShortUrlCreate, ShortUrlResponse, ShortUrlStats, ClickOut, ErrorResponse
from ..registry import ShortLinkRegistry

router = APIRouter()

def get_registry(request: Request) -> ShortLinkRegistry:
    return request.app.state.registry

def short_link_for(request: Request, shortcode: str) -> str:
    base_url = request.app.state.settings.BASE_URL or str(request.base_url)
    return f"{base_url.rstrip('/')}/{shortcode}"

@router.post(
    "/shorturls",
    response_model=ShortUrlResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def create_short_url(
    payload: ShortUrlCreate,
    request: Request,
    registry: ShortLinkRegistry = Depends(get_registry),
):
    created = registry.create(payload.url, payload.validity, payload.shortcode)

    return ShortUrlResponse(
        shortLink=short_link_for(request, created.shortcode),
        expiry=created.expires_at,
    )

@router.get("/shorturls/{shortcode}", response_model=ShortUrlStats, responses={404: {"model": ErrorResponse}})
async def get_short_url_stats(
    shortcode: str,
    registry: ShortLinkRegistry = Depends(get_registry),
):
    # Expired links still report their history
    stats = registry.stats(shortcode)

    return ShortUrlStats(
        originalUrl=stats.original_url,
        createdAt=stats.created_at,
        expiry=stats.expires_at,
        totalClicks=stats.total_clicks,
        clicks=[
            ClickOut(timestamp=click.timestamp, referrer=click.referrer, geo=click.geo)
            for click in stats.clicks
        ],
    )
