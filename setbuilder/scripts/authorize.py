"""Script to run the SoundCloud authorization-code flow from a terminal."""

import argparse
import asyncio
import logging
import sys

from setbuilder.core.config import Settings, get_settings
from setbuilder.services.credentials import GrantType, create_credential_provider
from setbuilder.services.errors import AuthorizationCancelledError, CatalogError


async def terminal_consent(authorize_url: str, callback_scheme: str) -> str | None:
    """Print the authorization URL and read back the pasted callback URL.

    Empty input (or end of input) cancels.
    """
    print("Open this URL in a browser and approve access:")
    print(f"  {authorize_url}")
    print(f"Then paste the {callback_scheme}:// URL you were redirected to (empty to cancel).")
    try:
        line = await asyncio.to_thread(input, "> ")
    except EOFError:
        return None
    return line.strip() or None


async def run(settings: Settings, show_token: bool) -> int:
    provider = create_credential_provider(
        GrantType.AUTHORIZATION_CODE, settings, consent=terminal_consent
    )
    async with provider:
        try:
            token = await provider.get_token()
        except AuthorizationCancelledError:
            print("No token obtained: authorization cancelled.")
            return 1
        except CatalogError as e:
            print(f"Authorization failed: {e}", file=sys.stderr)
            return 1

    print(f"Authenticated. Token expires at {token.expires_at.isoformat()} (scope: {token.scope})")
    if show_token:
        print(token.value)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Authorize SetBuilder with a SoundCloud account")
    parser.add_argument(
        "--show-token", action="store_true", help="Print the access token after authorizing"
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    return asyncio.run(run(settings, args.show_token))


if __name__ == "__main__":
    sys.exit(main())
