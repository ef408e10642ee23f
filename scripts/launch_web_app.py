#!/usr/bin/env python3
"""Launch the Scene Generator web interface."""

import argparse
import sys

from scene_generator.config import settings
from scene_generator.utils.logging_config import configure_logging
from scene_generator.web.app import launch_app


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Launch Scene Generator web interface"
    )

    parser.add_argument(
        '--share',
        action='store_true',
        help='Create a public share link (requires internet)'
    )

    parser.add_argument(
        '--port',
        type=int,
        default=7860,
        help='Port to run the server on (default: 7860)'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args()

    configure_logging("DEBUG" if args.debug or settings.debug else settings.log_level)

    print("""
    🎬 Scene Generator - Web Interface
    ==================================

    Starting web server...
    """)

    if not settings.validate_api_keys():
        print(f"⚠️  Credentials for the '{settings.generation_backend}' backend are not configured (see .env)")

    if args.share:
        print("📡 Creating public share link...")
    else:
        print(f"🌐 Local URL: http://localhost:{args.port}")

    print("\nPress Ctrl+C to stop the server\n")

    try:
        launch_app(share=args.share, port=args.port)
    except KeyboardInterrupt:
        print("\n\nServer stopped by user.")
    except Exception as e:
        print(f"\n❌ Error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
