from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session
from .. import crud, schemas, services
from ..db import get_db
from ..errors import NotFoundError, SweepInProgressError, ValidationError
from ..services import TrendingService
from ..utils import logger

router = APIRouter()


def get_trending_service(request: Request) -> TrendingService:
    return request.app.state.trending


def _page(res):
    return schemas.ListingPage(
        total=res["total"],
        items=[schemas.ListingOut.from_listing(o) for o in res["items"]],
    )


@router.get("/health")
def health():
    return {"status": "ok"}

@router.get("/listings", response_model=schemas.ListingPage)
def listings(
    skip: int = 0,
    limit: int = Query(20, le=100),
    min_price: float | None = Query(None),
    max_price: float | None = Query(None),
    sale_type: schemas.SaleType | None = Query(None),
    is_trending: bool | None = Query(None),
    is_auction_open: bool | None = Query(None),
    db: Session = Depends(get_db)
):
    filters = {
        "min_price": min_price,
        "max_price": max_price,
        "sale_type": sale_type,
        "is_trending": is_trending,
        "is_auction_open": is_auction_open,
    }
    return _page(crud.list_listings(db, skip=skip, limit=limit, filters=filters))


@router.get("/listings/{listing_id}", response_model=schemas.ListingOut)
def get_listing(listing_id: int, db: Session = Depends(get_db)):
    obj = crud.get_listing(db, listing_id, include_deleted=False)
    if not obj:
        raise HTTPException(status_code=404, detail="Listing not found")
    return schemas.ListingOut.from_listing(obj)


@router.post("/listings", response_model=schemas.ListingOut, status_code=201)
def create_listing(payload: schemas.ListingCreate, db: Session = Depends(get_db)):
    try:
        obj = services.create_listing(db, payload.model_dump())
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return schemas.ListingOut.from_listing(obj)


@router.patch("/listings/{listing_id}", response_model=schemas.ListingOut)
def update_listing(
    listing_id: int,
    payload: schemas.ListingUpdate,
    db: Session = Depends(get_db),
    trending: TrendingService = Depends(get_trending_service),
):
    updates = payload.to_updates()
    try:
        obj = services.update_listing(db, listing_id, updates)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Listing not found")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if "is_disable" in updates or "is_sold" in updates:
        trending.enqueue(listing_id)
    return schemas.ListingOut.from_listing(obj)


@router.delete("/listings/{listing_id}")
def delete_listing(
    listing_id: int,
    db: Session = Depends(get_db),
    trending: TrendingService = Depends(get_trending_service),
):
    ok = crud.delete_listing(db, listing_id)
    if not ok:
        raise HTTPException(status_code=404, detail="Listing not found")
    trending.enqueue(listing_id)
    return {"status": "deleted"}


@router.post("/listings/{listing_id}/view")
def track_view(
    listing_id: int,
    db: Session = Depends(get_db),
    trending: TrendingService = Depends(get_trending_service),
):
    try:
        trending.on_listing_viewed(db, listing_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Listing not found")
    return {"status": "ok"}


@router.patch("/listings/{listing_id}/trending", response_model=schemas.ListingOut)
def toggle_trending(
    listing_id: int,
    payload: schemas.TrendingToggle,
    db: Session = Depends(get_db),
    trending: TrendingService = Depends(get_trending_service),
):
    try:
        trending.set_trending(db, listing_id, payload.is_trending)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Listing not found")
    return schemas.ListingOut.from_listing(crud.get_listing(db, listing_id))


@router.get("/trending", response_model=schemas.ListingPage)
def trending_listings(skip: int = 0, limit: int = Query(20, le=100), db: Session = Depends(get_db)):
    return _page(crud.list_trending(db, skip=skip, limit=limit))


@router.post("/trending/refresh", response_model=schemas.SweepResult)
def refresh_trending(trending: TrendingService = Depends(get_trending_service)):
    try:
        return trending.sweep_all()
    except SweepInProgressError:
        raise HTTPException(status_code=409, detail="Trending sweep already running")
    except Exception as e:
        logger.exception("Manual trending sweep failed: %s", e)
        raise HTTPException(status_code=500, detail="Trending sweep failed")


@router.get("/cron/health/trending-update", response_model=schemas.SweepHealth)
def trending_sweep_health(trending: TrendingService = Depends(get_trending_service)):
    return trending.health()
