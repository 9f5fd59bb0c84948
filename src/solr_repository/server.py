"""
MCP Server exposing repository query methods.

Every query method of a repository becomes one MCP tool. Tool arguments are
passed to the method by parameter name; ``PageRequest`` parameters are
exposed as ``page``/``size`` integers and ``Sort`` parameters as a sort
string such as ``"popularity desc, name asc"``.
"""

import dataclasses
import json
import logging
import sys
import typing
from typing import Any, Dict, List, Optional

from mcp import McpError
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    INVALID_PARAMS,
    INTERNAL_ERROR,
    ErrorData,
    TextContent,
    Tool as ToolDefinition,
)
from pydantic import BaseModel

from .config import Config
from .exceptions import (
    InvalidDataAccessApiUsageError,
    ParameterBindingError,
    QueryCreationError,
    SOLRClientError,
)
from .query import Direction, Order, PageRequest, Sort
from .repository import SolrRepository

logger = logging.getLogger(__name__)

PING_TOOL = "ping_solr"
DEFAULT_PAGE_SIZE = 10

_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    tuple: "array",
    set: "array",
}


def parse_sort(value: str) -> Sort:
    """Parse ``"field [asc|desc], ..."`` into a Sort."""
    orders = []
    for clause in value.split(","):
        tokens = clause.split()
        if not tokens:
            continue
        if len(tokens) > 2:
            raise ValueError(f"Invalid sort clause: {clause.strip()!r}")
        direction = Direction(tokens[1].lower()) if len(tokens) == 2 else Direction.ASC
        orders.append(Order(tokens[0], direction))
    return Sort(tuple(orders))


def to_jsonable(value: Any) -> Any:
    """Convert repository results into JSON serializable structures."""
    if isinstance(value, BaseModel):
        return value.dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(item) for item in value]
    return value


class SolrRepositoryMCPServer:
    """
    MCP Server that provides the query methods of a repository as tools.

    The repository must have been created by a SolrRepositoryFactory so that
    its query methods are resolved.
    """

    def __init__(self, config: Config, repository: SolrRepository):
        """
        Initialize the server.

        Args:
            config: Configuration object containing SOLR and MCP settings.
            repository: Repository whose query methods are exposed.
        """
        self.config = config
        self.repository = repository
        self.server = Server("solr-repository")
        self._setup_tools()

    def _parameter_types(self, name: str) -> Dict[str, Any]:
        fn = getattr(type(self.repository), name)
        try:
            return typing.get_type_hints(fn)
        except Exception:
            return dict(getattr(fn, "__annotations__", {}))

    def _input_schema(self, name: str) -> Dict[str, Any]:
        method = self.repository.query_methods[name].query_method
        types = self._parameter_types(name)
        properties: Dict[str, Any] = {}
        required: List[str] = []

        for parameter in method.parameter_names:
            annotation = types.get(parameter)
            if annotation is PageRequest:
                properties["page"] = {"type": "integer", "minimum": 0, "default": 0}
                properties["size"] = {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": self.config.solr.max_rows,
                    "default": DEFAULT_PAGE_SIZE,
                }
                continue
            if annotation is Sort:
                properties[parameter] = {
                    "type": "string",
                    "description": "Sort order, e.g. 'popularity desc, name asc'",
                }
                continue
            origin = typing.get_origin(annotation) or annotation
            properties[parameter] = {"type": _JSON_TYPES.get(origin, "string")}
            if parameter not in method.parameter_defaults:
                required.append(parameter)
            elif isinstance(method.parameter_defaults[parameter], (str, int, float, bool)):
                properties[parameter]["default"] = method.parameter_defaults[parameter]

        schema: Dict[str, Any] = {"type": "object", "properties": properties}
        if required:
            schema["required"] = required
        return schema

    def tool_definitions(self) -> List[ToolDefinition]:
        """Describe one tool per query method plus the ping tool."""
        tools = []
        for name, repository_query in sorted(self.repository.query_methods.items()):
            method = repository_query.query_method
            description = (getattr(self.repository, name).__doc__ or "").strip()
            tools.append(
                ToolDefinition(
                    name=name,
                    description=description
                    or f"Query method {method.entity_name}.{name}",
                    inputSchema=self._input_schema(name),
                )
            )
        tools.append(
            ToolDefinition(
                name=PING_TOOL,
                description="Test SOLR connection",
                inputSchema={"type": "object", "properties": {}},
            )
        )
        return tools

    def _setup_tools(self) -> None:
        """Set up all available tools for the MCP server."""

        @self.server.list_tools()
        async def handle_list_tools() -> List[ToolDefinition]:
            """List all available tools."""
            return self.tool_definitions()

        @self.server.call_tool()
        async def handle_call_tool(
            name: str, arguments: Dict[str, Any]
        ) -> List[TextContent]:
            """Handle tool calls."""
            return await self.call_tool(name, arguments)

    async def call_tool(
        self, name: str, arguments: Optional[Dict[str, Any]]
    ) -> List[TextContent]:
        arguments = dict(arguments or {})
        try:
            if name == PING_TOOL:
                return await self._handle_ping_solr(arguments)
            if name in self.repository.query_methods:
                return await self._handle_query_method(name, arguments)
            raise McpError(
                ErrorData(code=INVALID_PARAMS, message=f"Unknown tool: {name}")
            )
        except McpError:
            raise
        except (
            ParameterBindingError,
            QueryCreationError,
            InvalidDataAccessApiUsageError,
            ValueError,
        ) as e:
            logger.warning(f"Invalid call of tool {name}: {e}")
            raise McpError(ErrorData(code=INVALID_PARAMS, message=str(e)))
        except SOLRClientError as e:
            logger.error(f"SOLR error in tool {name}: {e}")
            raise McpError(
                ErrorData(code=INTERNAL_ERROR, message=f"SOLR error: {str(e)}")
            )
        except Exception as e:
            logger.error(f"Unexpected error in tool {name}: {e}")
            raise McpError(
                ErrorData(code=INTERNAL_ERROR, message=f"Internal error: {str(e)}")
            )

    def _call_arguments(self, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        method = self.repository.query_methods[name].query_method
        types = self._parameter_types(name)

        kwargs: Dict[str, Any] = {}
        for parameter in method.parameter_names:
            annotation = types.get(parameter)
            if annotation is PageRequest:
                page = arguments.pop("page", None)
                size = arguments.pop("size", None)
                if page is None and size is None and parameter in method.parameter_defaults:
                    continue
                kwargs[parameter] = PageRequest(
                    int(0 if page is None else page),
                    int(DEFAULT_PAGE_SIZE if size is None else size),
                )
            elif parameter in arguments:
                value = arguments.pop(parameter)
                kwargs[parameter] = parse_sort(value) if annotation is Sort else value

        if arguments:
            raise ParameterBindingError(
                f"Unknown argument(s) for {name}: {', '.join(sorted(arguments))}"
            )
        return kwargs

    async def _handle_query_method(
        self, name: str, arguments: Dict[str, Any]
    ) -> List[TextContent]:
        """Run a repository query method."""
        kwargs = self._call_arguments(name, arguments)
        logger.debug(f"Calling {name} with {kwargs}")
        result = getattr(self.repository, name)(**kwargs)

        return [
            TextContent(
                type="text",
                text=json.dumps({"result": to_jsonable(result)}, indent=2, default=str),
            )
        ]

    def _ping(self) -> bool:
        ping = getattr(self.repository.operations, "ping", None)
        return bool(ping()) if ping else True

    async def _handle_ping_solr(self, arguments: Dict[str, Any]) -> List[TextContent]:
        """Handle SOLR ping requests."""
        result = {
            "status": "healthy" if self._ping() else "unhealthy",
            "collection": getattr(
                self.repository.operations, "collection", self.config.solr.collection
            ),
            "solr_url": self.config.solr.base_url,
        }

        return [TextContent(type="text", text=json.dumps(result, indent=2))]

    async def run(self) -> None:
        """Run the MCP server."""
        logger.info(
            f"Starting Solr repository MCP Server for "
            f"{type(self.repository).__name__} ({len(self.repository.query_methods)} "
            f"query methods)"
        )

        if not self._ping():
            raise RuntimeError(
                "Failed to connect to SOLR. Please check your configuration."
            )

        if sys.stdin.isatty():
            raise RuntimeError(
                "This MCP server requires STDIN for communication.\n"
                "It should be started by an MCP client, not run directly."
            )

        async with stdio_server() as (read_stream, write_stream):
            logger.info("Solr repository MCP Server is running...")

            initialization_options = self.server.create_initialization_options(
                notification_options=None,
                experimental_capabilities=None,
            )

            await self.server.run(
                read_stream, write_stream, initialization_options, False, True
            )

    def cleanup(self) -> None:
        """Clean up resources."""
        close = getattr(self.repository.operations, "close", None)
        if close:
            close()
            logger.info("Solr repository MCP Server cleanup completed")


async def run_server(config: Config, repository: SolrRepository) -> None:
    """
    Run the MCP server for a repository.

    Args:
        config: Configuration object.
        repository: Repository created by a SolrRepositoryFactory.
    """
    server = SolrRepositoryMCPServer(config, repository)
    try:
        await server.run()
    finally:
        server.cleanup()
