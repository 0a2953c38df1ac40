from __future__ import annotations

import asyncio
from typing import Any

from mcp.server import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server
from mcp.types import Resource, ResourceTemplate, TextContent, Tool

from . import resources
from .bridge.connection import ConnectionHolder
from .shared.config import load_config
from .shared.errors import GodotMCPError
from .shared.logging import configure_logging, get_logger
from .tools.registry import list_definitions, run_tool

app = Server("godot_mcp")
logger = get_logger(__name__)
# Single process-wide holder; run_server replaces it with a configured one.
connections = ConnectionHolder()


@app.list_tools()
async def list_tools() -> list[Tool]:
    return [
        Tool(name=tool.name, description=tool.description, inputSchema=tool.input_schema)
        for tool in list_definitions()
    ]


async def execute_tool(tool_name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
    text = await run_tool(connections.get(), tool_name, arguments)
    return [TextContent(type="text", text=text)]


@app.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    return await execute_tool(name, arguments)


@app.list_resources()
async def list_resources() -> list[Resource]:
    return [
        Resource(uri=resource.uri, name=resource.name, mimeType=resource.mime_type)
        for resource in resources.RESOURCE_DEFINITIONS
    ]


@app.list_resource_templates()
async def list_resource_templates() -> list[ResourceTemplate]:
    return [
        ResourceTemplate(
            uriTemplate=resources.ASSET_TEMPLATE_URI,
            name="Assets",
            description="Project files of one asset type: "
            + ", ".join(resources.ASSET_EXTENSIONS),
            mimeType="application/json",
        )
    ]


@app.read_resource()
async def read_resource(uri: Any) -> list[ReadResourceContents]:
    uri = str(uri).rstrip("/")
    try:
        text = await resources.read_resource(connections.get(), uri)
    except GodotMCPError as exc:
        logger.error("Error loading resource %s: %s", uri, exc)
        raise
    return [ReadResourceContents(content=text, mime_type=resources.mime_type_for(uri))]


async def run_server() -> None:
    config = load_config()
    configure_logging(config.logging)
    logger.info("Starting Godot MCP server (editor at %s)", config.bridge.url)

    # The editor may not be running yet; the first command connects.
    global connections
    connections = ConnectionHolder(config.bridge)
    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(read_stream, write_stream, app.create_initialization_options())
    finally:
        await connections.close()


def main() -> None:
    try:
        asyncio.run(run_server())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
