#!/usr/bin/env python
# coding: utf-8
import os
import sys
import argparse
import logging
from typing import Optional, Dict, List
from pydantic import Field
from fastmcp import FastMCP
from fastmcp.server.auth.providers.jwt import JWTVerifier, StaticTokenVerifier
from fastmcp.server.middleware.logging import LoggingMiddleware
from fastmcp.server.middleware.timing import TimingMiddleware
from fastmcp.server.middleware.rate_limiting import RateLimitingMiddleware
from fastmcp.server.middleware.error_handling import ErrorHandlingMiddleware
from update_manager.update_manager import setup_logging, UpdateManager
from update_manager.utils import to_boolean

# Initialize logging for MCP server
logger = setup_logging(is_mcp_server=True, log_file="update_manager_mcp.log")

DEFAULT_SCOPE_POLICY = (
    "strict"
    if to_boolean(os.environ.get("UPDATE_MANAGER_STRICT_SCOPE", None))
    else "permissive"
)


def _manager(project_directory, toolkit_directory, agent=None, role=None, scope_policy=None):
    return UpdateManager(
        project_directory=project_directory,
        toolkit_directory=toolkit_directory,
        agent=agent,
        role=role,
        scope_policy=scope_policy,
        is_mcp_server=True,
    )


def register_tools(mcp: FastMCP) -> FastMCP:
    @mcp.tool(
        annotations={
            "title": "Discover Pending Updates",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": False,
        },
        tags={"update_queue"},
    )
    async def discover_updates(
        project_directory: Optional[str] = Field(
            description="Project to discover updates for. Defaults to UPDATE_MANAGER_PROJECT_DIRECTORY env variable.",
            default=os.environ.get("UPDATE_MANAGER_PROJECT_DIRECTORY", None),
        ),
        toolkit_directory: Optional[str] = Field(
            description="Toolkit holding the central update registry. Defaults to UPDATE_MANAGER_TOOLKIT_DIRECTORY env variable.",
            default=os.environ.get("UPDATE_MANAGER_TOOLKIT_DIRECTORY", None),
        ),
    ) -> List[Dict]:
        """
        Lists the updates pending for a project, in project, registry, legacy order.
        Already applied updates and broadcasts whose affinity rule does not match are left out.
        """
        logger.debug(f"Discovering updates for {project_directory}")
        try:
            manager = _manager(project_directory, toolkit_directory)
            return [
                {
                    "id": update.id,
                    "source": update.source,
                    "title": update.record.title,
                    "priority": update.record.priority,
                    "type": update.record.ledger_type,
                    "classification": update.classification.model_dump(),
                    "files_affected": update.record.files_affected,
                    "sections": update.record.sections,
                }
                for update in manager.discover()
            ]
        except Exception as e:
            logger.error(f"Error in discover_updates: {e}")
            raise

    @mcp.tool(
        annotations={
            "title": "Classify Update Scope",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": False,
        },
        tags={"update_queue"},
    )
    async def classify_update(
        update_id: str = Field(description="Id of the pending update, e.g. 2026-01-01-fix"),
        role: str = Field(
            description="Consuming role: planner or builder.",
            default=os.environ.get("UPDATE_MANAGER_ROLE", "builder"),
        ),
        scope_policy: str = Field(
            description="permissive or strict. Defaults to UPDATE_MANAGER_STRICT_SCOPE env variable.",
            default=DEFAULT_SCOPE_POLICY,
        ),
        project_directory: Optional[str] = Field(
            description="Project the update belongs to.",
            default=os.environ.get("UPDATE_MANAGER_PROJECT_DIRECTORY", None),
        ),
        toolkit_directory: Optional[str] = Field(
            description="Toolkit holding the central update registry.",
            default=os.environ.get("UPDATE_MANAGER_TOOLKIT_DIRECTORY", None),
        ),
    ) -> Dict:
        """
        Reports the scope of a pending update, whether it was declared or inferred,
        and whether the given role may apply it.
        """
        try:
            manager = _manager(
                project_directory, toolkit_directory, role=role, scope_policy=scope_policy
            )
            return manager.classify_update(update_id).model_dump()
        except Exception as e:
            logger.error(f"Error in classify_update: {e}")
            raise

    @mcp.tool(
        annotations={
            "title": "Mark Update Applied",
            "readOnlyHint": False,
            "destructiveHint": True,
            "idempotentHint": True,
            "openWorldHint": False,
        },
        tags={"update_queue"},
    )
    async def apply_update(
        update_id: str = Field(
            description="Id of the pending update whose changes have been made."
        ),
        agent: Optional[str] = Field(
            description="Agent recorded as appliedBy in the ledger. Defaults to UPDATE_MANAGER_AGENT env variable.",
            default=os.environ.get("UPDATE_MANAGER_AGENT", None),
        ),
        role: str = Field(
            description="Consuming role: planner or builder.",
            default=os.environ.get("UPDATE_MANAGER_ROLE", "builder"),
        ),
        scope_policy: str = Field(
            description="permissive or strict. Defaults to UPDATE_MANAGER_STRICT_SCOPE env variable.",
            default=DEFAULT_SCOPE_POLICY,
        ),
        project_directory: Optional[str] = Field(
            description="Project the update belongs to.",
            default=os.environ.get("UPDATE_MANAGER_PROJECT_DIRECTORY", None),
        ),
        toolkit_directory: Optional[str] = Field(
            description="Toolkit holding the central update registry.",
            default=os.environ.get("UPDATE_MANAGER_TOOLKIT_DIRECTORY", None),
        ),
    ) -> Dict:
        """
        Records a pending update as applied once its instructions have been carried out.
        Project and legacy update files are deleted; registry updates are only ledgered.
        Returns a redirected status when the role may not apply the update's scope.
        """
        logger.debug(f"Applying update {update_id} in {project_directory}")
        try:
            manager = _manager(
                project_directory, toolkit_directory, agent, role, scope_policy
            )
            return manager.apply_update(update_id).model_dump()
        except Exception as e:
            logger.error(f"Error in apply_update: {e}")
            raise

    @mcp.tool(
        annotations={
            "title": "Skip Update",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": False,
        },
        tags={"update_queue"},
    )
    async def skip_update(
        update_id: str = Field(description="Id of the pending update to defer."),
        project_directory: Optional[str] = Field(
            description="Project the update belongs to.",
            default=os.environ.get("UPDATE_MANAGER_PROJECT_DIRECTORY", None),
        ),
        toolkit_directory: Optional[str] = Field(
            description="Toolkit holding the central update registry.",
            default=os.environ.get("UPDATE_MANAGER_TOOLKIT_DIRECTORY", None),
        ),
    ) -> Dict:
        """
        Defers a pending update. Nothing is written, so it resurfaces on the next discovery.
        """
        try:
            manager = _manager(project_directory, toolkit_directory)
            return manager.skip_update(update_id).model_dump()
        except Exception as e:
            logger.error(f"Error in skip_update: {e}")
            raise

    @mcp.tool(
        annotations={
            "title": "Validate Pending Updates",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": False,
        },
        tags={"update_queue"},
    )
    async def validate_updates(
        require_scope: bool = Field(
            description="Treat a missing scope field as a violation.", default=False
        ),
        project_directory: Optional[str] = Field(
            description="Project whose docs/pending-updates should be checked.",
            default=os.environ.get("UPDATE_MANAGER_PROJECT_DIRECTORY", None),
        ),
    ) -> Dict:
        """
        Checks every pending update file for required frontmatter and sections.
        """
        try:
            manager = _manager(project_directory, None)
            report = manager.validate_updates(require_scope=require_scope)
            return {"ok": report.ok, **report.model_dump()}
        except Exception as e:
            logger.error(f"Error in validate_updates: {e}")
            raise

    @mcp.tool(
        annotations={
            "title": "Generate Updates From Affinity Rule",
            "readOnlyHint": False,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": False,
        },
        tags={"update_producers"},
    )
    async def generate_updates(
        rule_id: str = Field(description="Affinity rule selecting the target projects."),
        name: str = Field(description="Update name; today's date is prepended to form the id."),
        template_file: Optional[str] = Field(
            description="Markdown template providing the update body.", default=None
        ),
        priority: str = Field(
            description="low, normal, high or urgent.", default="normal"
        ),
        update_type: str = Field(description="Update type recorded in the ledger.", default="schema"),
        dry_run: bool = Field(description="Only report matching projects.", default=False),
        toolkit_directory: Optional[str] = Field(
            description="Toolkit holding the affinity rules.",
            default=os.environ.get("UPDATE_MANAGER_TOOLKIT_DIRECTORY", None),
        ),
    ) -> Dict:
        """
        Writes a pending update into every registered project whose project.json matches the rule,
        skipping projects that already applied it or already have it pending.
        """
        try:
            manager = _manager(None, toolkit_directory)
            return manager.generate_updates(
                rule_id=rule_id,
                name=name,
                template_file=template_file,
                priority=priority,
                update_type=update_type,
                dry_run=dry_run,
            ).model_dump()
        except Exception as e:
            logger.error(f"Error in generate_updates: {e}")
            raise

    @mcp.tool(
        annotations={
            "title": "Migrate Legacy Updates",
            "readOnlyHint": False,
            "destructiveHint": True,
            "idempotentHint": True,
            "openWorldHint": False,
        },
        tags={"update_producers"},
    )
    async def migrate_legacy_updates(
        dry_run: bool = Field(description="Only report what would move.", default=False),
        commit: bool = Field(
            description="Commit migrated files in each project.", default=True
        ),
    ) -> Dict:
        """
        Moves updates from the legacy per-machine store into each project's docs/pending-updates.
        """
        try:
            manager = _manager(None, None)
            return manager.migrate_legacy_updates(dry_run=dry_run, commit=commit).model_dump()
        except Exception as e:
            logger.error(f"Error in migrate_legacy_updates: {e}")
            raise

    @mcp.tool(
        annotations={
            "title": "Update Session Status",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": False,
        },
        tags={"update_queue"},
    )
    async def session_status(
        project_directory: Optional[str] = Field(
            description="Project whose session lease should be inspected.",
            default=os.environ.get("UPDATE_MANAGER_PROJECT_DIRECTORY", None),
        ),
    ) -> Dict:
        """
        Reports which session holds the project's update lease and whether it is stale.
        """
        try:
            return _manager(project_directory, None).session_status()
        except Exception as e:
            logger.error(f"Error in session_status: {e}")
            raise

    return mcp


mcp = register_tools(FastMCP(name="UpdateManager"))


def update_manager_mcp():
    parser = argparse.ArgumentParser(description="Update Manager MCP Utility")
    parser.add_argument(
        "-t",
        "--transport",
        default="stdio",
        choices=["stdio", "http", "sse"],
        help="Transport method: 'stdio', 'http', or 'sse' [legacy] (default: stdio)",
    )
    parser.add_argument(
        "-s",
        "--host",
        default="0.0.0.0",
        help="Host address for HTTP transport (default: 0.0.0.0)",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=8000,
        help="Port number for HTTP transport (default: 8000)",
    )
    parser.add_argument(
        "--auth-type",
        default="none",
        choices=["none", "static", "jwt"],
        help="Authentication type for MCP server: 'none' (disabled), 'static' (token from UPDATE_MANAGER_MCP_TOKEN), 'jwt' (external token verification) (default: none)",
    )
    parser.add_argument(
        "--token-jwks-uri", default=None, help="JWKS URI for JWT verification"
    )
    parser.add_argument(
        "--token-issuer", default=None, help="Issuer for JWT verification"
    )
    parser.add_argument(
        "--token-audience", default=None, help="Audience for JWT verification"
    )

    args = parser.parse_args()

    if args.port < 0 or args.port > 65535:
        print(f"Error: Port {args.port} is out of valid range (0-65535).")
        sys.exit(1)

    auth = None
    if args.auth_type == "static":
        token = os.environ.get("UPDATE_MANAGER_MCP_TOKEN")
        if not token:
            print("Error: static auth requires the UPDATE_MANAGER_MCP_TOKEN env variable")
            sys.exit(1)
        auth = StaticTokenVerifier(
            tokens={token: {"client_id": "update-manager", "scopes": ["read", "write"]}}
        )
    elif args.auth_type == "jwt":
        if not (args.token_jwks_uri and args.token_issuer and args.token_audience):
            print(
                "Error: jwt requires --token-jwks-uri, --token-issuer, --token-audience"
            )
            sys.exit(1)
        auth = JWTVerifier(
            jwks_uri=args.token_jwks_uri,
            issuer=args.token_issuer,
            audience=args.token_audience,
        )
    mcp.auth = auth

    mcp.add_middleware(
        ErrorHandlingMiddleware(include_traceback=True, transform_errors=True)
    )
    mcp.add_middleware(
        RateLimitingMiddleware(max_requests_per_second=10.0, burst_capacity=20)
    )
    mcp.add_middleware(TimingMiddleware())
    mcp.add_middleware(LoggingMiddleware())

    if args.transport == "stdio":
        mcp.run(transport="stdio")
    elif args.transport == "http":
        mcp.run(transport="http", host=args.host, port=args.port)
    elif args.transport == "sse":
        mcp.run(transport="sse", host=args.host, port=args.port)
    else:
        logger = logging.getLogger("UpdateManager")
        logger.error("Transport not supported")
        sys.exit(1)


if __name__ == "__main__":
    update_manager_mcp()
