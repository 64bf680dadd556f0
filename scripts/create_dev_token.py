"""
Issue a bearer token for local development, shaped like the auth provider's
"""
import argparse
import sys
from datetime import timedelta
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from taskflow.auth.security import create_access_token, provider_claims
from loguru import logger


def main():
    parser = argparse.ArgumentParser(description="Create a development access token")
    parser.add_argument("--sub", required=True, help="User id at the auth provider")
    parser.add_argument("--email", required=True, help="User email")
    parser.add_argument("--name", default=None, help="Display name")
    parser.add_argument("--minutes", type=int, default=None, help="Token lifetime in minutes")
    args = parser.parse_args()

    claims = provider_claims(args.sub, args.email, name=args.name)
    expires = timedelta(minutes=args.minutes) if args.minutes else None
    token = create_access_token(claims, expires_delta=expires)
    logger.info(f"Token issued for {args.email}")
    print(token)


if __name__ == "__main__":
    main()
