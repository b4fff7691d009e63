# Minimal example of a live tag view
import asyncio
from datetime import datetime, timezone

from livetags import LiveProjection, MemorySubscriptionSource


async def main():
    async with MemorySubscriptionSource() as source:
        await source.add("user-1", "groceries", datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc))

        async with LiveProjection(source) as tags:
            tags.add_listener(lambda state: print(
                f"loading={state.is_loading} error={state.error!r} "
                f"tags={[t.to_dict() for t in state.data or []]}"
            ))

            tags.activate("user-1")
            await tags.wait_until_loaded(timeout=5)

            # Server-assigned timestamp: shows up pending first, then committed
            await source.add("user-1", "travel")

            source.fail("user-1", "permission-denied")
            print(f"Final error: {tags.error}")


if __name__ == "__main__":
    asyncio.run(main())
