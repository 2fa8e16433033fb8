"""
LLM SERVER TEST SCRIPT - Claude and LibreTranslate Selector
===========================================================

PURPOSE:
This is a command-line test interface for a running LLM Server. It sends
dictations to either backend the way MacWhisper would, so you can watch
session carry-over (Claude) and the translation round trip (LibreTranslate)
without a dictation app.

USAGE:
    python test.py

    Make sure the server is running first: python run.py

COMMANDS:
    1 - Switch to Claude (session carry-over, 5 minute window)
    2 - Switch to LibreTranslate (stateless round trip)
    /model <name> - Ask Claude for a specific model (haiku, sonnet, opus)
    /models - List the models of the current backend
    /stream - Toggle streaming responses
    /health - Check the server
    /quit or /exit - Exit the test interface

Not a pytest module: the automated tests live in tests/.
"""

import json

import requests

try:
    from config import BASE_PATH, PORT
except ImportError:
    BASE_PATH, PORT = "", 51732


# -----------------------------------------------------------------------------
# CONFIGURATION
# -----------------------------------------------------------------------------
BASE_URL = f"http://localhost:{PORT}{BASE_PATH}"
CURRENT_BACKEND = None  # "claude" or "libretranslate"
CURRENT_MODEL = None
STREAM = False


# -----------------------------------------------------------------------------
# UI HELPERS
# -----------------------------------------------------------------------------

def print_header():
    print("\n" + "=" * 60)
    print("LLM Server - Dictation Test Client")
    print("=" * 60)
    print("\nBackends:")
    print("  1 = Claude (with session carry-over)")
    print("  2 = LibreTranslate (round trip)")
    print("\nCommands:")
    print("  /model <name> - Claude model")
    print("  /models - List models")
    print("  /stream - Toggle streaming")
    print("  /health - Server health")
    print("  /quit - Exit")
    print("=" * 60 + "\n")


def get_user_input():
    try:
        return input("\nYou: ").strip()
    except (KeyboardInterrupt, EOFError):
        return None


# -----------------------------------------------------------------------------
# API CALLS
# -----------------------------------------------------------------------------

def read_stream(response) -> str:
    """Collect the content deltas of an SSE chat-completion stream."""
    content = ""
    for line in response.iter_lines(decode_unicode=True):
        if not line or not line.startswith("data: "):
            continue
        payload = line[len("data: "):]
        if payload == "[DONE]":
            break
        chunk = json.loads(payload)
        for choice in chunk.get("choices", []):
            content += choice.get("delta", {}).get("content", "")
    return content


def send_dictation(text, backend):
    """
    Send one dictation to the chosen backend and return the assistant text.

    The text is wrapped in a fenced block like MacWhisper's prompt templates do,
    so the server stores only the dictation itself in the session.
    """
    body = {
        "messages": [
            {"role": "system", "content": "Clean up the dictation. Reply with the corrected text only."},
            {"role": "user", "content": f"Dictation:\n```\n{text}\n```"},
        ],
        "stream": STREAM,
    }
    if CURRENT_MODEL and backend == "claude":
        body["model"] = CURRENT_MODEL

    try:
        response = requests.post(
            f"{BASE_URL}/{backend}/v1/chat/completions",
            json=body,
            timeout=90,  # Claude CLI may take up to 60s
            stream=STREAM,
        )
        if response.status_code != 200:
            try:
                return f"❌ {response.json()['error']['message']}"
            except (ValueError, KeyError, TypeError):
                return f"❌ Error: {response.status_code} - {response.text}"
        if STREAM:
            return read_stream(response)
        data = response.json()
        return data["choices"][0]["message"]["content"]

    except requests.exceptions.ConnectionError:
        return "❌ Cannot connect to server. Start it with: python run.py"
    except requests.exceptions.Timeout:
        return "❌ Request timed out."


def list_models(backend):
    try:
        response = requests.get(f"{BASE_URL}/{backend}/v1/models", timeout=10)
        models = response.json().get("data", [])
        return ", ".join(f"{m['id']} ({m['owned_by']})" for m in models) or "No models"
    except requests.exceptions.RequestException as e:
        return f"Error listing models: {e}"


def check_health():
    try:
        response = requests.get(f"{BASE_URL}/health", timeout=5)
        return response.json().get("status", "unknown")
    except requests.exceptions.RequestException as e:
        return f"unreachable ({e})"


# -----------------------------------------------------------------------------
# MAIN LOOP
# -----------------------------------------------------------------------------

def main():
    global CURRENT_BACKEND, CURRENT_MODEL, STREAM

    print_header()
    print("Select backend first (1=Claude, 2=LibreTranslate):\n")

    while True:
        user_input = get_user_input()
        if user_input is None or user_input in ["/quit", "/exit"]:
            print("\n👋 Goodbye!")
            break

        if user_input == "1":
            CURRENT_BACKEND = "claude"
            print("✅ Switched to Claude\n")
            continue
        if user_input == "2":
            CURRENT_BACKEND = "libretranslate"
            print("✅ Switched to LibreTranslate\n")
            continue
        if user_input.startswith("/model "):
            CURRENT_MODEL = user_input.split(maxsplit=1)[1]
            print(f"✅ Claude model: {CURRENT_MODEL}")
            continue
        if user_input == "/stream":
            STREAM = not STREAM
            print(f"✅ Streaming {'on' if STREAM else 'off'}")
            continue
        if user_input == "/health":
            print(f"Server: {check_health()}")
            continue
        if user_input == "/models":
            if not CURRENT_BACKEND:
                print("❌ Please select a backend first (1 or 2)")
                continue
            print(list_models(CURRENT_BACKEND))
            continue
        if user_input.startswith("/"):
            print(f"❌ Unknown command: {user_input}")
            continue
        if not CURRENT_BACKEND:
            print("❌ Please select a backend first (1=Claude or 2=LibreTranslate)")
            continue

        print(f"🤖 {CURRENT_BACKEND}: ", end="", flush=True)
        print(send_dictation(user_input, CURRENT_BACKEND))


# Run the interactive loop when this file is executed (python test.py).
if __name__ == "__main__":
    main()
