"""MCP server exposing the patient search core as tools."""
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from src.config import get_config
from src.derivation import patient_age
from src.kv_store import get_kv_store
from src.models import Patient, SearchResult
from src.patients_reader import read_patients
from src.search_state import QUICK_FILTERS, PatientListSearch, SearchStateStore

# Results returned by search_patients unless the caller passes a limit
DEFAULT_RESULT_LIMIT = 25


# Global state
_patients_cache: Optional[List[Patient]] = None
_search_state: Optional[SearchStateStore] = None
_list_search: Optional[PatientListSearch] = None


def load_patients(patients_path: Optional[Path] = None) -> List[Patient]:
    """Load patients, using cache if available.

    Args:
        patients_path: Optional path to the patients JSON file

    Returns:
        List of patients (empty if the file is missing or unreadable)
    """
    global _patients_cache

    if _patients_cache is None:
        path = patients_path or get_config().patients_path
        if path is None:
            print("Warning: PATIENT_SEARCH_PATIENTS is not set; no patients loaded", file=sys.stderr)
            _patients_cache = []
        else:
            try:
                _patients_cache = read_patients(path)
            except FileNotFoundError as e:
                print(f"Warning: Could not find patients file: {e}", file=sys.stderr)
                _patients_cache = []
            except Exception as e:
                print(f"Error loading patients: {e}", file=sys.stderr)
                _patients_cache = []

    return _patients_cache


async def get_search_state() -> SearchStateStore:
    """Get or create the advanced search state backed by the SQLite store."""
    global _search_state

    if _search_state is None:
        config = get_config()
        kv_store = await get_kv_store(config.store_db_path)
        _search_state = SearchStateStore(load_patients(), kv_store, config.search)

    return _search_state


def get_list_search() -> PatientListSearch:
    """Get or create the list view search state."""
    global _list_search

    if _list_search is None:
        _list_search = PatientListSearch(load_patients(), get_config().search)

    return _list_search


def _patient_to_dict(patient: Patient) -> Dict[str, Any]:
    data = asdict(patient)
    data["derived_age"] = patient_age(patient)
    return data


def _result_to_dict(result: SearchResult) -> Dict[str, Any]:
    return {
        "patient": _patient_to_dict(result.patient),
        "score": result.score,
        "matched_fields": list(result.matched_fields),
    }


def _json_response(payload: Any) -> List[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload, indent=2))]


def _error(message: str) -> List[TextContent]:
    return [TextContent(type="text", text=f"Error: {message}")]


# ============================================================================
# Tool handlers
# ============================================================================

async def health_check_tool() -> List[TextContent]:
    config = get_config()
    return _json_response({
        "status": "ok",
        "patients_loaded": len(load_patients()),
        "patients_path": str(config.patients_path) if config.patients_path else None,
        "debounce_ms": config.search.debounce_ms,
    })


def _limit(value: Any) -> int:
    """Result cap from tool input; anything non-numeric or negative gives the default."""
    try:
        limit = int(value)
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_RESULT_LIMIT
    return limit if limit >= 0 else DEFAULT_RESULT_LIMIT


async def search_patients_tool(arguments: Dict[str, Any]) -> List[TextContent]:
    """Tool handler for search_patients (ranked advanced search).

    Args:
        arguments: Partial filter update; omitted fields keep their current value

    Returns:
        List of TextContent with ranked results as JSON
    """
    state = await get_search_state()

    changes: Dict[str, Any] = {}
    for name in ("query", "conditions", "last_visit_start", "last_visit_end",
                 "insurance", "risk_level", "sort_by", "sort_order"):
        if name in arguments:
            changes[name] = arguments[name]
    if "age_min" in arguments or "age_max" in arguments:
        low, high = state.filters.age_range
        changes["age_range"] = (arguments.get("age_min", low), arguments.get("age_max", high))

    state.update_filter(**changes)
    state.flush_query()

    if "query" in arguments:
        state.add_to_history(state.filters.query)

    limit = _limit(arguments.get("limit"))
    return _json_response({
        "total": state.total_count,
        "matched": state.result_count,
        "has_active_filters": state.has_active_filters,
        "filters": state.filters.to_dict(),
        "results": [_result_to_dict(r) for r in state.results[:limit]],
    })


async def list_patients_tool(arguments: Dict[str, Any]) -> List[TextContent]:
    """Tool handler for list_patients (plain list view filtering)."""
    list_search = get_list_search()
    list_search.update_filter(
        search_query=arguments.get("query", ""),
        filter_risk=arguments.get("risk", "all"),
        filter_condition=arguments.get("condition", "all"),
        sort_by=arguments.get("sort_by", "name"),
    )
    list_search.flush_query()

    return _json_response({
        "total": list_search.total_count,
        "matched": list_search.result_count,
        "patients": [_patient_to_dict(p) for p in list_search.results],
    })


async def list_conditions_tool() -> List[TextContent]:
    state = await get_search_state()
    return _json_response({"conditions": state.available_conditions})


async def reset_filters_tool() -> List[TextContent]:
    state = await get_search_state()
    state.reset_filters()
    return _json_response({"filters": state.filters.to_dict(), "matched": state.result_count})


async def apply_quick_filter_tool(name: str) -> List[TextContent]:
    state = await get_search_state()
    try:
        filters = state.apply_quick_filter(name)
    except ValueError as e:
        return _error(str(e))
    return _json_response({"filters": filters.to_dict(), "matched": state.result_count})


async def save_search_tool(name: str) -> List[TextContent]:
    state = await get_search_state()
    saved = state.save_search(name)
    return _json_response({"saved": saved.to_dict(), "saved_count": len(state.saved_searches)})


async def list_saved_searches_tool() -> List[TextContent]:
    state = await get_search_state()
    return _json_response({"saved_searches": [s.to_dict() for s in state.saved_searches]})


async def load_saved_search_tool(name: str) -> List[TextContent]:
    state = await get_search_state()
    saved = state.find_saved_search(name)
    if saved is None:
        return _error(f"No saved search named '{name}'")

    state.load_search(saved)
    return _json_response({
        "filters": state.filters.to_dict(),
        "matched": state.result_count,
        "results": [_result_to_dict(r) for r in state.results[:25]],
    })


async def get_search_history_tool() -> List[TextContent]:
    state = await get_search_state()
    return _json_response({"history": state.search_history})


# ============================================================================
# Server
# ============================================================================

_RISK_LEVEL_SCHEMA = {"type": "string", "enum": ["all", "low", "medium", "high"]}


def create_server() -> Server:
    """Create and configure the MCP server.

    Returns:
        Configured Server instance
    """
    server = Server("patient-search-mcp")

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """List available tools."""
        return [
            Tool(
                name="health_check",
                description="Report server status and how many patients are loaded.",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="search_patients",
                description=(
                    "Ranked patient search. Updates the active filters (omitted fields keep their "
                    "current value) and returns patients ordered by match score, with the fields "
                    "that matched."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "query": {"type": "string", "description": "Free text matched against name, id, condition, phone and email"},
                        "age_min": {"type": "integer"},
                        "age_max": {"type": "integer"},
                        "conditions": {"type": "array", "items": {"type": "string"}},
                        "last_visit_start": {"type": "string", "description": "ISO date, inclusive"},
                        "last_visit_end": {"type": "string", "description": "ISO date, inclusive"},
                        "insurance": {"type": ["string", "null"]},
                        "risk_level": _RISK_LEVEL_SCHEMA,
                        "sort_by": {"type": "string", "enum": ["name", "age", "last_visit", "risk", "condition"]},
                        "sort_order": {"type": "string", "enum": ["asc", "desc"]},
                        "limit": {"type": "integer", "default": DEFAULT_RESULT_LIMIT},
                    },
                },
            ),
            Tool(
                name="list_patients",
                description="Plain patient list: every query word must match, optional risk and condition filters.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "query": {"type": "string"},
                        "risk": _RISK_LEVEL_SCHEMA,
                        "condition": {"type": "string", "description": "Exact condition, or 'all'"},
                        "sort_by": {"type": "string", "enum": ["name", "risk", "recent"]},
                    },
                },
            ),
            Tool(
                name="list_conditions",
                description="List the distinct condition labels in the patient set.",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="reset_filters",
                description="Restore the default search filters.",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="apply_quick_filter",
                description="Apply a pre-canned filter: recent_visits (last 30 days), high_risk, or elderly (65+).",
                inputSchema={
                    "type": "object",
                    "properties": {"name": {"type": "string", "enum": list(QUICK_FILTERS)}},
                    "required": ["name"],
                },
            ),
            Tool(
                name="save_search",
                description="Save the current filters under a name.",
                inputSchema={
                    "type": "object",
                    "properties": {"name": {"type": "string"}},
                    "required": ["name"],
                },
            ),
            Tool(
                name="list_saved_searches",
                description="List saved searches.",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="load_saved_search",
                description="Replace the current filters with a saved search and return its results.",
                inputSchema={
                    "type": "object",
                    "properties": {"name": {"type": "string"}},
                    "required": ["name"],
                },
            ),
            Tool(
                name="get_search_history",
                description="Recent search queries, newest first.",
                inputSchema={"type": "object", "properties": {}},
            ),
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: Any) -> list[TextContent]:
        """Handle tool calls."""
        arguments = arguments or {}

        if name == "health_check":
            return await health_check_tool()
        elif name == "search_patients":
            return await search_patients_tool(arguments)
        elif name == "list_patients":
            return await list_patients_tool(arguments)
        elif name == "list_conditions":
            return await list_conditions_tool()
        elif name == "reset_filters":
            return await reset_filters_tool()
        elif name == "list_saved_searches":
            return await list_saved_searches_tool()
        elif name == "get_search_history":
            return await get_search_history_tool()
        elif name in ("apply_quick_filter", "save_search", "load_saved_search"):
            value = arguments.get("name", "")
            if not value:
                return _error("'name' parameter is required")
            if name == "apply_quick_filter":
                return await apply_quick_filter_tool(value)
            if name == "save_search":
                return await save_search_tool(value)
            return await load_saved_search_tool(value)
        else:
            raise ValueError(f"Unknown tool: {name}")

    return server


async def main():
    """Main entry point for the MCP server."""
    server = create_server()

    try:
        async with stdio_server() as (read_stream, write_stream):
            initialization_options = server.create_initialization_options()
            await server.run(read_stream, write_stream, initialization_options)
    finally:
        # The store only exists once the search state has been created
        if _search_state is not None:
            _search_state.close()
            kv_store = await get_kv_store()
            await kv_store.close()
