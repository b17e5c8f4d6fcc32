"""
Stdio tool server used by the integration tests.

Speaks newline-delimited JSON-RPC on stdin/stdout:

    echo     returns its ``text`` argument
    slow     sleeps ``seconds`` before answering
    crash    exits the process without answering

Started as ``python echo_server.py [--silent]``; ``--silent`` never answers
``initialize``.
"""

import json
import sys
import time


TOOLS = [
    {
        "name": "echo",
        "description": "Return the given text",
        "inputSchema": {
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        },
    },
    {
        "name": "slow",
        "description": "Answer after a delay",
        "inputSchema": {"type": "object", "properties": {"seconds": {"type": "number"}}},
    },
    {"name": "crash", "description": "Exit without answering", "inputSchema": {"type": "object"}},
]


def reply(request_id, result):
    sys.stdout.write(json.dumps({"jsonrpc": "2.0", "id": request_id, "result": result}) + "\n")
    sys.stdout.flush()


def call_tool(request_id, name, arguments):
    if name == "echo":
        reply(request_id, {"content": [{"type": "text", "text": arguments["text"]}]})
    elif name == "slow":
        time.sleep(float(arguments.get("seconds", 1)))
        reply(request_id, {"content": [{"type": "text", "text": "slept"}]})
    elif name == "crash":
        sys.exit(3)
    else:
        reply(request_id, {"content": [{"type": "text", "text": f"unknown tool {name}"}], "isError": True})


def main():
    silent = "--silent" in sys.argv
    print("echo server starting", file=sys.stderr, flush=True)
    for line in sys.stdin:
        message = json.loads(line)
        method = message.get("method")
        request_id = message.get("id")
        if method == "initialize":
            if silent:
                continue
            reply(
                request_id,
                {
                    "protocolVersion": "2024-11-05",
                    "capabilities": {"tools": {}},
                    "serverInfo": {"name": "echo-server", "version": "0.0.1"},
                },
            )
        elif method == "tools/list":
            reply(request_id, {"tools": TOOLS})
        elif method == "tools/call":
            params = message.get("params") or {}
            call_tool(request_id, params.get("name"), params.get("arguments") or {})
        elif method == "ping":
            reply(request_id, {})


if __name__ == "__main__":
    main()
