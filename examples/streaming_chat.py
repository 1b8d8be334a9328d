"""
Streaming Chat Example

Runs a short two-turn conversation against the on-device model, printing
each response as it streams in. Requires macOS 26+ with Apple Intelligence
enabled and ``apple-fm-sdk`` installed (``pip install "applei[apple]"``).
"""

import asyncio

from applei import ChatConfig, ModelUnavailableError, SessionController


async def main():
    print("=== Streaming Chat Example ===\n")

    config = ChatConfig(temperature=0.5, instructions="You are a helpful assistant.")
    async with SessionController(config=config) as controller:
        for prompt in ("Tell me a short story about a cat.", "Now give it a title."):
            print(f"User: {prompt}\n")
            print("Assistant: ", end="", flush=True)
            async for delta in controller.send(prompt):
                print(delta, end="", flush=True)
            print("\n")

        print(f"Turns completed: {controller.turn_count}")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except ModelUnavailableError as exc:
        print(exc)
        raise SystemExit(2) from exc
