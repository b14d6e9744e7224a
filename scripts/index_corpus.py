import argparse
import asyncio
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from rulebook_mcp_server.config import settings
from rulebook_mcp_server.core.errors import RulebookError
from rulebook_mcp_server.main import configure_logging
from rulebook_mcp_server.runtime import build_runtime


async def main(force: bool) -> int:
    configure_logging()

    print(f"Initializing runtime for {settings.corpus_format} at {settings.corpus_repo_path}...")
    runtime = build_runtime(settings)

    try:
        if force:
            print("Forcing full re-index...")
            result = await runtime.update_service.full_reindex()
            print(
                f"Indexed {len(result.documents)} documents in "
                f"{len(result.categories)} categories at revision {result.revision}."
            )
        else:
            print("Checking corpus revision...")
            outcome = await runtime.update_service.update()
            if outcome.updated:
                print(f"Re-indexed {outcome.document_count} documents at revision {outcome.revision}.")
            else:
                print(f"Index already current at revision {outcome.revision}.")
    except RulebookError as e:
        print(f"Indexing failed: {e}", file=sys.stderr)
        return 1
    finally:
        await runtime.close()

    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Index the configured rulebook corpus.")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Re-index even when the recorded revision matches the checkout.",
    )
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.force)))
