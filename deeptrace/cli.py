#!/usr/bin/env python3
"""
ldt — llm-deep-trace CLI

Usage:
    ldt sessions [--provider P]              List sessions, newest first
    ldt messages <session_id> [--provider P] Normalized transcript (default provider: kova)
    ldt search <query> [-l N]                Search metadata and raw transcripts
    ldt key <session_key>                    Resolve an OpenClaw session key
    ldt agents                               Detect installed tools and session roots
    ldt status                               Config diagnostics

Options:
    -v, --verbose                            Debug logging on stderr
"""

from __future__ import annotations

import json
import logging
import sys


def _json_out(data):
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def cmd_sessions(args):
    from deeptrace.api import sessions
    result = sessions(provider=_get_opt(args, "--provider"))
    if isinstance(result, dict) and "error" in result:
        _err(result["error"])
    _json_out(result)


def cmd_messages(args):
    from deeptrace.api import messages
    positional = _positional(args, "--provider")
    if not positional:
        _err("Usage: ldt messages <session_id> [--provider P]")
    provider = _get_opt(args, "--provider") or "kova"
    result = messages(positional[0], provider=provider)
    if isinstance(result, dict) and "error" in result:
        _err(result["error"])
    _json_out(result)


def cmd_search(args):
    from deeptrace.api import search
    if not args:
        _err("Usage: ldt search <query> [-l LIMIT]")

    query = args[0]
    limit_str = _get_opt(args[1:], "-l") or _get_opt(args[1:], "--limit")
    _json_out(search(query, limit=int(limit_str) if limit_str else None))


def cmd_key(args):
    from deeptrace.api import session_by_key
    if not args:
        _err("Usage: ldt key <session_key>")
    result = session_by_key(args[0])
    if "error" in result:
        _err(result["error"])
    _json_out(result)


def cmd_agents(args):
    from deeptrace.api import detect_agents
    _json_out(detect_agents())


def cmd_status(args):
    from deeptrace.api import status
    result = status()
    print(f"  config:   {result['config_path']}{'' if result['config_exists'] else ' (defaults)'}")
    print(f"  home:     {result['home']}")
    for name, info in result["providers"].items():
        if not info["enabled"]:
            state = "disabled"
        elif info["exists"]:
            state = "ok"
        else:
            state = "missing"
        print(f"  {name:10s}{state:10s}{info['sessions_dir']}")


COMMANDS = {
    "sessions": cmd_sessions,
    "messages": cmd_messages,
    "search": cmd_search,
    "key": cmd_key,
    "agents": cmd_agents,
    "status": cmd_status,
}


def _get_opt(args, flag):
    """Extract value after a flag from args list."""
    if flag in args:
        idx = args.index(flag)
        if idx + 1 < len(args):
            return args[idx + 1]
    return None


def _positional(args, *value_flags):
    """Arguments that are neither flags nor the value of a flag."""
    out = []
    skip = False
    for a in args:
        if skip:
            skip = False
            continue
        if a in value_flags:
            skip = True
            continue
        if not a.startswith("-"):
            out.append(a)
    return out


def _err(msg):
    print(msg, file=sys.stderr)
    sys.exit(1)


def main():
    argv = [a for a in sys.argv[1:] if a not in ("-v", "--verbose")]
    verbose = len(argv) != len(sys.argv) - 1
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not argv or argv[0] in ("-h", "--help", "help"):
        print(__doc__.strip())
        sys.exit(0)

    cmd = argv[0]
    handler = COMMANDS.get(cmd)
    if not handler:
        print(f"Unknown command: {cmd}", file=sys.stderr)
        print(f"Available: {', '.join(COMMANDS.keys())}", file=sys.stderr)
        sys.exit(1)

    handler(argv[1:])


if __name__ == "__main__":
    main()
