"""
Quick demo script: run the SOS coach locally with the seeded demo client.

Usage:
    python scripts/run_demo.py
"""

import uvicorn

from soscoach.content.interventions import DEMO_CLIENT


def main():
    print("=" * 60)
    print("  SOS Coach: craving and energy support sessions")
    print("=" * 60)
    print()
    print("Starting server at http://localhost:8000")
    print(f"Demo access token: {DEMO_CLIENT.access_token}")
    print()
    print("  curl -X POST localhost:8000/api/sos/start \\")
    print(f"       -H 'Content-Type: application/json' -d '{{\"token\": \"{DEMO_CLIENT.access_token}\"}}'")
    print()
    print("API docs: http://localhost:8000/docs")
    print("Press Ctrl+C to stop.")
    print()

    uvicorn.run(
        "soscoach.api.app:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )


if __name__ == "__main__":
    main()
