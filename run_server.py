import sys
import asyncio
import uvicorn

if __name__ == "__main__":
    # Enforce Proactor Event Loop for Playwright on Windows
    if sys.platform == 'win32':
        print("Enforcing WindowsProactorEventLoopPolicy for Playwright support...")
        asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

    print("Starting Flow Batch server (reload disabled)")
    # NOTE: Reload MUST be False on Windows + Playwright to properly inherit EventLoopPolicy
    uvicorn.run("flowbatch.main:app", host="0.0.0.0", port=8000, reload=False)
