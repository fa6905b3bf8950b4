"""FastAPI application: feed management, sync triggers, conflicts and iCal export."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query, Response

from riadsync.config import settings
from riadsync.database import get_session, init_db
from riadsync.errors import ConflictAlreadyResolved, FeedNotFound, InvalidExportToken, SyncInProgress
from riadsync.models.feed import ICalFeed
from riadsync.models.property import Property, Room
from riadsync.modules.calendar_sync import CalendarSyncer, ConflictResolver
from riadsync.modules.calendar_sync.stores import (
    SqlBookingStore,
    SqlConflictStore,
    SqlFeedStore,
    SqlPropertyStore,
)
from riadsync.modules.export import (
    ExportGenerator,
    decode_export_token,
    encode_export_token,
    export_url,
    fallback_calendar,
)
from riadsync.scheduler import create_scheduler
from riadsync.schemas import (
    ConflictOut,
    ExportUrlOut,
    FeedCreate,
    FeedOut,
    FeedUpdate,
    ResolveRequest,
    SyncResultOut,
)

logger = logging.getLogger(__name__)

ICAL_HEADERS = {"Content-Disposition": 'attachment; filename="calendar.ics"'}
ICAL_MEDIA_TYPE = "text/calendar; charset=utf-8"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting RiadSync...")
    init_db()
    seed_properties_from_config()

    scheduler = create_scheduler(get_syncer())
    scheduler.start()
    logger.info("Scheduler started.")

    yield

    scheduler.shutdown()
    logger.info("RiadSync shut down.")


app = FastAPI(title="RiadSync", lifespan=lifespan)


def get_syncer() -> CalendarSyncer:
    """The process-wide syncer; its per-feed locks must be shared by every caller."""
    syncer = getattr(app.state, "syncer", None)
    if syncer is None:
        syncer = app.state.syncer = CalendarSyncer()
    return syncer


def seed_properties_from_config() -> None:
    """Seed properties, rooms and feeds from config.yaml if not already in DB."""
    session = get_session()
    try:
        for prop_cfg in settings.get("properties", []):
            prop = session.query(Property).filter(Property.name == prop_cfg["name"]).first()
            if prop is None:
                prop = Property(
                    name=prop_cfg["name"],
                    address=prop_cfg.get("address", ""),
                    notes=prop_cfg.get("notes"),
                )
                session.add(prop)
                session.commit()
                logger.info("Seeded property: %s", prop.name)

            rooms = {r.name: r for r in prop.rooms}
            for room_cfg in prop_cfg.get("rooms", []):
                if room_cfg["name"] not in rooms:
                    room = Room(property_id=prop.id, name=room_cfg["name"])
                    session.add(room)
                    session.commit()
                    rooms[room.name] = room

            feed_urls = {f.url for f in prop.feeds}
            for feed_cfg in prop_cfg.get("feeds", []):
                if feed_cfg["url"] in feed_urls:
                    continue
                room = rooms.get(feed_cfg.get("room")) if feed_cfg.get("room") else None
                session.add(ICalFeed(
                    name=feed_cfg["name"],
                    url=feed_cfg["url"],
                    property_id=prop.id,
                    room_id=room.id if room else None,
                    direction=feed_cfg.get("direction", "import"),
                    priority=feed_cfg.get("priority", 1),
                    auto_sync=feed_cfg.get("auto_sync", True),
                    sync_interval=feed_cfg.get("sync_interval", 60),
                ))
                session.commit()
                logger.info("Seeded iCal feed: %s", feed_cfg["name"])
    finally:
        session.close()


# --- iCal export ---


def _ical_response(body: str) -> Response:
    # Always 200: calendar platforms drop feeds that answer with errors.
    return Response(content=body, media_type=ICAL_MEDIA_TYPE, headers=ICAL_HEADERS)


@app.get("/api/ical")
async def export_calendar_without_token():
    logger.warning("iCal export requested without a calendar identifier")
    return _ical_response(fallback_calendar())


@app.get("/api/ical/{token}")
async def export_calendar(token: str):
    """Serve the outbound iCal feed for a property or room."""
    try:
        target = decode_export_token(token)
    except InvalidExportToken as exc:
        logger.warning("Rejected iCal export token %r: %s", token, exc)
        return _ical_response(fallback_calendar())

    session = get_session()
    try:
        try:
            generator = ExportGenerator(SqlBookingStore(session), SqlPropertyStore(session))
        except Exception:
            logger.exception("Could not set up iCal export for token %r, serving fallback", token)
            return _ical_response(fallback_calendar())
        return _ical_response(generator.generate(target.property_id, target.room_id))
    finally:
        session.close()


@app.get("/api/export-url", response_model=ExportUrlOut)
async def get_export_url(property_id: int, room_id: int | None = None):
    return ExportUrlOut(
        url=export_url(property_id, room_id),
        token=encode_export_token(property_id, room_id),
    )


# --- Feed management ---


@app.get("/api/feeds", response_model=list[FeedOut])
async def list_feeds(property_id: int | None = None):
    session = get_session()
    try:
        return SqlFeedStore(session).list_feeds(property_id)
    finally:
        session.close()


@app.post("/api/feeds", response_model=FeedOut, status_code=201)
async def create_feed(body: FeedCreate):
    session = get_session()
    try:
        if session.get(Property, body.property_id) is None:
            raise HTTPException(status_code=404, detail=f"Property {body.property_id} not found")
        return SqlFeedStore(session).create_feed(**body.model_dump(mode="json"))
    finally:
        session.close()


@app.get("/api/feeds/{feed_id}", response_model=FeedOut)
async def get_feed(feed_id: int):
    session = get_session()
    try:
        feed = SqlFeedStore(session).get_feed(feed_id)
        if feed is None:
            raise HTTPException(status_code=404, detail=str(FeedNotFound(feed_id)))
        return feed
    finally:
        session.close()


@app.patch("/api/feeds/{feed_id}", response_model=FeedOut)
async def update_feed(feed_id: int, body: FeedUpdate):
    session = get_session()
    try:
        changes = body.model_dump(mode="json", exclude_unset=True)
        feed = SqlFeedStore(session).update_feed(feed_id, **changes)
        if feed is None:
            raise HTTPException(status_code=404, detail=str(FeedNotFound(feed_id)))
        return feed
    finally:
        session.close()


@app.delete("/api/feeds/{feed_id}", status_code=204)
async def delete_feed(feed_id: int):
    session = get_session()
    try:
        if not SqlFeedStore(session).delete_feed(feed_id):
            raise HTTPException(status_code=404, detail=str(FeedNotFound(feed_id)))
    finally:
        session.close()
    return Response(status_code=204)


# --- Sync ---


@app.post("/api/feeds/{feed_id}/sync", response_model=SyncResultOut)
def sync_feed(feed_id: int):
    """Run one sync of a feed and report what changed."""
    try:
        result = get_syncer().sync_feed_by_id(feed_id)
    except FeedNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SyncInProgress as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return SyncResultOut.model_validate(result)


@app.post("/api/sync")
def trigger_sync():
    """Manually trigger a sync of every importing feed."""
    results = get_syncer().sync_all()
    return {
        "feeds": len(results),
        "succeeded": sum(1 for r in results.values() if r.success),
        "conflicts": sum(r.conflict_count for r in results.values()),
    }


# --- Conflicts ---


@app.get("/api/conflicts", response_model=list[ConflictOut])
async def list_conflicts(property_id: int | None = None, pending: bool = Query(default=True)):
    session = get_session()
    try:
        return SqlConflictStore(session).list_conflicts(property_id, pending_only=pending)
    finally:
        session.close()


@app.post("/api/conflicts/{conflict_id}/resolve", response_model=ConflictOut)
async def resolve_conflict(conflict_id: int, body: ResolveRequest):
    session = get_session()
    try:
        conflicts = SqlConflictStore(session)
        conflict = conflicts.get_conflict(conflict_id)
        if conflict is None:
            raise HTTPException(status_code=404, detail=f"Conflict {conflict_id} not found")
        resolver = ConflictResolver(SqlBookingStore(session), conflicts)
        try:
            return resolver.resolve(conflict, body.resolution)
        except ConflictAlreadyResolved as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
    finally:
        session.close()


def main() -> None:
    """Entry point for running the app."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    init_db()
    logger.info("Database initialized.")

    uvicorn.run(
        "riadsync.app:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )


if __name__ == "__main__":
    main()
