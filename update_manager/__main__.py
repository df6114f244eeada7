import sys
from update_manager.update_manager_mcp import update_manager_mcp


def main():
    if len(sys.argv) > 1 and sys.argv[1] == "cli":
        # Remove "cli" from argv so the getopt parser only sees its own flags
        sys.argv.pop(1)
        from update_manager.update_manager import main as cli_main

        cli_main()
    else:
        # Default to MCP or explicit 'mcp' command
        if len(sys.argv) > 1 and sys.argv[1] == "mcp":
            sys.argv.pop(1)
        update_manager_mcp()


if __name__ == "__main__":
    main()
