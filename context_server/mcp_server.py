#!/usr/bin/env python3
"""
MCP server entry point for the context server.

This is the protocol wrapper around context_server/core/server.py: it reads
framed JSON-RPC messages, dispatches them and writes framed responses. All
business logic lives in ContextServer.
"""

import asyncio
import json
import logging
import sys
from typing import Any, BinaryIO, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from context_server.config import ServerConfig, get_config
from context_server.core.exceptions import (
    AnalysisError,
    ConfigurationError,
    ContextServerError,
    FramingError,
    PatternNotFoundError,
    ToolNotFoundError,
    ValidationError,
)
from context_server.core.server import ContextServer
from context_server.core.tracing import clear_operation_id, get_logger, new_operation
from context_server.log_utils import configure_logging
from context_server.protocol.framing import MessageReader, write_message
from context_server.protocol.jsonrpc import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    OPTIONAL_LIST_KEYS,
    PARSE_ERROR,
    JsonRpcRequest,
    MethodKind,
    make_error,
    make_response,
)

logger = get_logger(__name__)

# Caller mistakes, answered with "invalid params"
CLIENT_ERRORS = (ValidationError, ToolNotFoundError, PatternNotFoundError, AnalysisError)


def _error_data(error: ContextServerError) -> Dict[str, Any]:
    data = {"error_code": error.error_code}
    if error.solution:
        data["solution"] = error.solution
    return data


class ProtocolEngine:
    """
    Reads one framed message, dispatches it, writes one framed response.

    Strictly sequential: the next message is not read until the previous
    response has been written and flushed, so responses leave in arrival
    order. Nothing is written before the first message arrives.
    """

    def __init__(self, server: ContextServer, input_stream: BinaryIO, output_stream: BinaryIO):
        """
        Args:
            server: Tool operations handle, shared for the process lifetime
            input_stream: Binary stream to read framed messages from
            output_stream: Binary stream to write framed responses to
        """
        self.server = server
        self.reader = MessageReader(input_stream)
        self.output = output_stream

    async def run(self) -> None:
        """Serve until end of stream or a framing error."""
        logger.info("Waiting for requests...")

        while True:
            try:
                body = await asyncio.to_thread(self.reader.read_message)
            except FramingError as e:
                logger.error(f"Framing error, closing stream: {e}")
                return

            if body is None:
                logger.info("Input stream closed (EOF)")
                return

            response = await self.handle_message(body)
            if response is not None:
                write_message(self.output, response)
            clear_operation_id()

    async def handle_message(self, body: bytes) -> Optional[Dict[str, Any]]:
        """
        Process one message body.

        Returns:
            The response envelope, or None when nothing must be sent
            (notifications, and bodies with no recoverable id)
        """
        new_operation()

        try:
            data = json.loads(body)
        except ValueError as e:
            logger.warning(f"Dropping undecodable message: {e}")
            return None

        try:
            request = JsonRpcRequest.model_validate(data)
        except PydanticValidationError as e:
            if isinstance(data, dict) and "id" in data:
                logger.warning(f"Invalid JSON-RPC envelope: {e.error_count()} error(s)")
                return make_error(data["id"], PARSE_ERROR, "Parse error", {"error": str(e)})
            logger.warning("Dropping invalid envelope without id")
            return None

        if request.is_notification:
            logger.debug(f"Notification {request.method} ignored")
            return None

        return await self.dispatch(request)

    async def dispatch(self, request: JsonRpcRequest) -> Dict[str, Any]:
        """Route a request by method kind and wrap the outcome in an envelope."""
        kind = request.kind
        logger.info(f"Handling method: {request.method}")

        try:
            if kind is MethodKind.INITIALIZE:
                result = self.server.server_info()
            elif kind is MethodKind.TOOLS_LIST:
                result = self.server.list_tools()
            elif kind is MethodKind.TOOLS_CALL:
                result = await self._call_tool(request.params)
            elif kind.is_optional_list:
                result = {OPTIONAL_LIST_KEYS[kind]: []}
            else:
                return make_error(request.id, METHOD_NOT_FOUND, f"Method not found: {request.method}")

        except CLIENT_ERRORS as e:
            logger.warning(f"Rejected {request.method}: {e.message}")
            return make_error(request.id, INVALID_PARAMS, e.message, _error_data(e))

        except ContextServerError as e:
            logger.error(f"Error handling {request.method}: {e}")
            return make_error(request.id, INTERNAL_ERROR, e.message, _error_data(e))

        except Exception as e:
            logger.exception(f"Unexpected error handling {request.method}")
            return make_error(request.id, INTERNAL_ERROR, f"Internal error: {e}")

        return make_response(request.id, result)

    async def _call_tool(self, params: Any) -> Dict[str, Any]:
        if not isinstance(params, dict):
            raise ValidationError("Missing params for tools/call")
        if "name" not in params:
            raise ValidationError("Missing tool name")
        return await self.server.call_tool(params["name"], params.get("arguments"))


async def serve(
    config: Optional[ServerConfig] = None,
    input_stream: Optional[BinaryIO] = None,
    output_stream: Optional[BinaryIO] = None,
) -> None:
    """Load the pattern store and serve the protocol until end of input."""
    server = ContextServer(config or get_config())
    await server.initialize()

    engine = ProtocolEngine(
        server,
        input_stream if input_stream is not None else sys.stdin.buffer,
        output_stream if output_stream is not None else sys.stdout.buffer,
    )
    await engine.run()
    logger.info("Server shutdown complete")


def setup_logging(config: ServerConfig) -> None:
    """Configure logging from config; everything goes to stderr."""
    configure_logging(
        use_json=config.log_format == "json",
        level=getattr(logging, config.log_level),
        log_file=config.log_file,
    )


def main() -> None:
    """Run the stdio server."""
    try:
        config = get_config()
    except ConfigurationError as e:
        print(str(e), file=sys.stderr)
        sys.exit(2)
    setup_logging(config)
    logger.info(f"Starting {config.server_name} {config.server_version} on stdio")

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
