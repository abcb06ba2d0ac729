"""FastMCP server — evaluation tools for an already-authenticated caller."""


import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, Any, Literal

from fastmcp import FastMCP
from pydantic import Field

from ideaflow.config import Config
from ideaflow.core.evaluation import EvaluationEngine
from ideaflow.core.ideas import IdeaService
from ideaflow.errors import IdeaflowError
from ideaflow.events.bus import EventBus
from ideaflow.storage.sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)


def _json(data: dict[str, Any]) -> str:
    return json.dumps(data, default=str)


def _ok(data: dict[str, Any]) -> str:
    """Return a versioned JSON success response."""
    return _json({**data, "_v": "1.0"})


def _err(msg: str, *, code: str = "invalid", status: int = 400) -> str:
    """Return a versioned JSON error response."""
    return _json({"_v": "1.0", "error": msg, "code": code, "status": status})


def _fail(exc: IdeaflowError) -> str:
    return _json({"_v": "1.0", **exc.to_dict()})


def create_server(db_path: str, config: Config | None = None) -> FastMCP:
    """Create FastMCP server with the evaluation workflow tools."""
    config = config or Config(workspace_path=Path(db_path).parent)
    mcp = FastMCP("ideaflow", version="0.1.0")

    state: dict[str, Any] = {}
    _lock = asyncio.Lock()

    async def _init() -> dict[str, Any]:
        async with _lock:
            if "init_failed" in state:
                raise RuntimeError(f"Ideaflow init previously failed for {db_path}")
            if "engine" not in state:
                try:
                    store = SQLiteStore(Path(db_path), wal_mode=config.wal_mode)
                    await store.initialize()
                except Exception as e:
                    state["init_failed"] = True
                    logger.error("Failed to initialize database: %s", e)
                    raise RuntimeError(f"Ideaflow init failed: {db_path}") from e
                bus = EventBus()
                state["store"] = store
                state["bus"] = bus
                state["ideas"] = IdeaService(store, bus)
                state["engine"] = EvaluationEngine(store, bus, bulk_limit=config.bulk_limit)
        return state

    # ── ev_idea ───────────────────────────────────────────────

    @mcp.tool()
    async def ev_idea(
        action: Annotated[
            Literal["submit", "get", "list"],
            Field(description="submit | get | list"),
        ],
        title: Annotated[str | None, Field(description="Idea title (submit)")] = None,
        description: Annotated[str | None, Field(description="Idea description (submit)")] = None,
        category: Annotated[
            str | None,
            Field(description="Category (submit, list)"),
        ] = None,
        owner_id: Annotated[
            str | None,
            Field(description="Submitter identity (submit, list)"),
        ] = None,
        idea_id: Annotated[str | None, Field(description="Idea ID (get)")] = None,
        status: Annotated[
            str | None,
            Field(description="SUBMITTED|UNDER_REVIEW|APPROVED|REJECTED|NEEDS_REVISION (list)"),
        ] = None,
        limit: Annotated[int, Field(description="Max results 1-100 (list)", ge=1, le=100)] = 10,
        offset: Annotated[int, Field(description="Pagination offset (list)", ge=0)] = 0,
    ) -> str:
        """Submit ideas for evaluation and look them up. New ideas start in SUBMITTED.

Actions: submit (new idea), get (one idea with status and version), list (filter ideas)."""  # noqa: E501
        s = await _init()
        ideas = s["ideas"]

        try:
            if action == "submit":
                if not title or not title.strip():
                    return _err("title is required for submit")
                idea = await ideas.create(
                    title=title,
                    description=description or "",
                    category=category,
                    owner_id=owner_id,
                )
                return _ok(idea.to_response(detail="full"))

            if action == "get":
                if not idea_id or not idea_id.strip():
                    return _err("idea_id is required for get")
                idea = await ideas.get(idea_id.strip())
                return _ok(idea.to_response(detail="full"))

            if action == "list":
                found = await ideas.list_ideas(
                    status=status,
                    category=category,
                    owner_id=owner_id,
                    limit=limit,
                    offset=offset,
                )
                items = [i.to_response() for i in found]
                return _ok({"count": len(items), "ideas": items})
        except IdeaflowError as e:
            return _fail(e)

        return _err(f"Unknown action: {action}")

    # ── ev_evaluate ───────────────────────────────────────────

    @mcp.tool()
    async def ev_evaluate(
        idea_id: Annotated[str, Field(description="Idea to evaluate")],
        evaluator_id: Annotated[str, Field(description="Verified evaluator identity")],
        decision: Annotated[
            Literal["ACCEPTED", "REJECTED", "NEEDS_REVISION"],
            Field(description="ACCEPTED | REJECTED | NEEDS_REVISION"),
        ],
        comments: Annotated[str, Field(description="Evaluation comments, max 500 characters")],
        file_ref: Annotated[
            str | None,
            Field(description="Optional reference to a supporting file"),
        ] = None,
        expected_version: Annotated[
            int | None,
            Field(description="Reject with a conflict unless the idea is at this version", ge=0),
        ] = None,
    ) -> str:
        """Submit an evaluation. Appends an audit record and moves the idea to APPROVED, REJECTED or NEEDS_REVISION in one atomic write."""  # noqa: E501
        s = await _init()
        try:
            evaluation = await s["engine"].submit_evaluation(
                idea_id,
                evaluator_id,
                decision,
                comments,
                file_ref,
                expected_version=expected_version,
            )
        except IdeaflowError as e:
            return _fail(e)
        return _ok({"evaluation": evaluation.to_response(detail="full")})

    # ── ev_history ────────────────────────────────────────────

    @mcp.tool()
    async def ev_history(
        idea_id: Annotated[str, Field(description="Idea whose audit trail to read")],
    ) -> str:
        """Read-only evaluation history for an idea, oldest first."""
        s = await _init()
        try:
            history = await s["engine"].get_evaluation_history(idea_id)
        except IdeaflowError as e:
            return _fail(e)
        items = [e.to_response(detail="full") for e in history]
        return _ok({"count": len(items), "evaluations": items})

    # ── ev_queue ──────────────────────────────────────────────

    @mcp.tool()
    async def ev_queue(
        limit: Annotated[
            int | None,
            Field(description=f"Results per page (default {config.queue_page_default})"),
        ] = None,
        offset: Annotated[int | None, Field(description="Pagination offset")] = None,
    ) -> str:
        """Open ideas awaiting evaluation, newest first, with the latest evaluation as a preview."""  # noqa: E501
        s = await _init()
        page_limit, page_offset = config.clamp_page(limit, offset)
        try:
            page = await s["engine"].get_evaluation_queue(page_limit, page_offset)
        except IdeaflowError as e:
            return _fail(e)
        return _json(page.to_response())

    # ── ev_bulk ───────────────────────────────────────────────

    @mcp.tool()
    async def ev_bulk(
        action: Annotated[
            Literal["status", "assign"],
            Field(description="status | assign"),
        ],
        idea_ids: Annotated[
            list[str],
            Field(description=f"Idea IDs, at most {config.bulk_limit}"),
        ],
        evaluator_id: Annotated[
            str | None,
            Field(description="Verified evaluator identity (status)"),
        ] = None,
        decision: Annotated[
            str | None,
            Field(description="ACCEPTED | REJECTED | NEEDS_REVISION (status)"),
        ] = None,
        assignee_id: Annotated[
            str | None,
            Field(description="Evaluator to assign the ideas to (assign)"),
        ] = None,
    ) -> str:
        """Bulk triage. All audit records and status changes of one call apply together or not at all.

Actions: status (apply one decision to every idea), assign (move ideas to UNDER_REVIEW for an assignee)."""  # noqa: E501
        s = await _init()
        engine = s["engine"]

        try:
            if action == "status":
                if not decision:
                    return _err("decision is required for status")
                if not evaluator_id:
                    return _err("evaluator_id is required for status")
                updated = await engine.bulk_status_update(idea_ids, decision, evaluator_id)
                return _ok({
                    "updated": updated,
                    "message": f"Successfully updated {updated} ideas",
                })

            if action == "assign":
                if not assignee_id:
                    return _err("assignee_id is required for assign")
                assigned = await engine.bulk_assign(idea_ids, assignee_id)
                return _ok({
                    "assigned": assigned,
                    "message": f"Successfully assigned {assigned} ideas",
                })
        except IdeaflowError as e:
            return _fail(e)

        return _err(f"Unknown action: {action}")

    # ── Resources ─────────────────────────────────────────────

    @mcp.resource("ev://status")
    async def ev_resource_status() -> str:
        """Idea counts per status and evaluation log size."""
        s = await _init()
        stats = await s["store"].get_stats()
        return _ok(stats)

    return mcp
