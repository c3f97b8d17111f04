# main.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from cricket_api import cache
from cricket_api.config import API_CACHE_TTL_SECONDS, COLLECTIONS, validate_config
from cricket_api.logging_setup import configure_logging
from cricket_api.maintenance import MergeError, find_duplicate_players, merge_players
from cricket_api.normalizer import match_sort_key
from cricket_api.store import DocumentStore, FirestoreStore, StoreUnavailableError

# -----------------------
# App
# -----------------------
app = FastAPI(
    title="Cricket Stats API",
    version="0.2.0",
    description="Read API over the v2 players / teams / matches collections, plus duplicate-player maintenance",
)

_store: Optional[DocumentStore] = None


def get_store() -> DocumentStore:
    global _store
    if _store is None:
        _store = FirestoreStore()
    return _store


@app.on_event("startup")
def on_startup():
    configure_logging()
    validate_config()


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    return JSONResponse(status_code=503, content={"detail": f"Document store unavailable: {exc}"})


@app.get("/health")
def health_check():
    return {"status": "ok", "time": datetime.now(timezone.utc).isoformat()}


# -----------------------
# Helpers
# -----------------------
_ID_FIELDS = {"players": "playerId", "teams": "teamId", "matches": "matchId"}


async def _get_entity(store: DocumentStore, kind: str, ident: str) -> Dict[str, Any]:
    """
    Look up by 19-digit id, falling back to the small displayId
    (the number users see in the UI).
    """
    ident = ident.strip()
    doc = await store.get_document(COLLECTIONS[kind], ident)
    if doc is None and ident.isdigit() and len(ident) < 19:
        hits = await store.get(COLLECTIONS[kind], [("displayId", "==", int(ident))], limit=1)
        doc = hits[0].data if hits else None
    if doc is None:
        raise HTTPException(status_code=404, detail=f"{kind[:-1].capitalize()} not found: {ident}")
    return doc


async def _cached_list(key: str, load) -> Dict[str, Any]:
    cached = cache.get(key)
    if cached is not None:
        return {"source": "cache", "count": len(cached), "data": cached}

    data = await load()
    cache.set(key, data, ttl_seconds=API_CACHE_TTL_SECONDS)
    return {"source": "store", "count": len(data), "data": data}


# -----------------------
# Players
# -----------------------
@app.get("/api/players")
async def list_players(
    teamId: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    store: DocumentStore = Depends(get_store),
):
    async def load() -> List[Dict[str, Any]]:
        filters = [("isActive", "==", True)]
        if teamId:
            filters.append(("teamIds", "array_contains", teamId))
        docs = [s.data for s in await store.get(COLLECTIONS["players"], filters)]
        docs.sort(key=lambda d: str(d.get("name") or "").lower())
        return docs[:limit] if limit else docs

    return await _cached_list(cache.make_key("players", teamId, limit), load)


@app.get("/api/players/duplicates")
async def list_duplicate_players(store: DocumentStore = Depends(get_store)):
    groups = await find_duplicate_players(store)
    return {
        "count": len(groups),
        "groups": [
            [{"playerId": d.get("playerId"), "displayId": d.get("displayId"), "name": d.get("name")} for d in g]
            for g in groups
        ],
    }


@app.get("/api/players/{playerId}")
async def get_player(playerId: str, store: DocumentStore = Depends(get_store)):
    return {"data": await _get_entity(store, "players", playerId)}


class MergeRequest(BaseModel):
    sourceId: str = Field(..., min_length=1, description="Duplicate player to fold away")
    targetId: str = Field(..., min_length=1, description="Player that keeps the combined record")


@app.post("/api/players/merge")
async def api_merge_players(req: MergeRequest, store: DocumentStore = Depends(get_store)):
    try:
        result = await merge_players(store, req.sourceId.strip(), req.targetId.strip())
    except MergeError as e:
        raise HTTPException(status_code=409, detail=str(e))

    cache.clear()
    if result.failed_keys:
        raise HTTPException(status_code=500, detail={"message": "Merge partially failed", "result": result.to_dict()})
    return {"input": req.model_dump(), "result": result.to_dict()}


# -----------------------
# Teams
# -----------------------
@app.get("/api/teams")
async def list_teams(store: DocumentStore = Depends(get_store)):
    async def load() -> List[Dict[str, Any]]:
        docs = [s.data for s in await store.get(COLLECTIONS["teams"], [("isActive", "==", True)])]
        docs.sort(key=lambda d: str(d.get("name") or "").lower())
        return docs

    return await _cached_list(cache.make_key("teams"), load)


@app.get("/api/teams/{teamId}")
async def get_team(teamId: str, store: DocumentStore = Depends(get_store)):
    return {"data": await _get_entity(store, "teams", teamId)}


# -----------------------
# Matches
# -----------------------
@app.get("/api/matches")
async def list_matches(teamId: Optional[str] = None, store: DocumentStore = Depends(get_store)):
    async def load() -> List[Dict[str, Any]]:
        filters = [("teamIds", "array_contains", teamId)] if teamId else None
        docs = [s.data for s in await store.get(COLLECTIONS["matches"], filters)]
        docs.sort(key=match_sort_key, reverse=True)
        return docs

    return await _cached_list(cache.make_key("matches", teamId), load)


@app.get("/api/matches/{matchId}")
async def get_match(matchId: str, store: DocumentStore = Depends(get_store)):
    return {"data": await _get_entity(store, "matches", matchId)}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)
