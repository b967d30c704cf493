"""MCP server entry point — exposes MailTools over stdio."""

import logging
import os

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP

from gmail_mcp.agent import MailboxAgent
from gmail_mcp.config import Settings
from gmail_mcp.server.tools import TOOL_NAMES, MailTools

logger = logging.getLogger(__name__)

SERVER_NAME = "gmail-mcp-server"


def build_server(agent: MailboxAgent) -> FastMCP:
    """Register every MailTools method as an MCP tool on a new FastMCP server."""
    server = FastMCP(SERVER_NAME)
    tools = MailTools(agent)
    for name in TOOL_NAMES:
        server.add_tool(getattr(tools, name), name=name)
    logger.debug("Registered %d tools", len(TOOL_NAMES))
    return server


def main() -> None:
    """Run the MCP server on stdio.  Called by the ``gmail-mcp`` script."""
    load_dotenv()

    # stdout carries the MCP protocol; logs go to stderr (basicConfig default).
    logging.basicConfig(
        level=os.environ.get("GMAIL_MCP_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    settings = Settings.from_env()
    agent = MailboxAgent.from_settings(settings)
    logger.info("Starting %s (data dir: %s)", SERVER_NAME, settings.home)
    build_server(agent).run(transport="stdio")


if __name__ == "__main__":
    main()
