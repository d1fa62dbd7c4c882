#!/usr/bin/env python3
"""
Gold Platform Entry Point

Starts the FastAPI server with the gold pricing and KYC core.
"""

import sys

from gold_platform.config import get_config
from gold_platform.logging_config import setup_logging
from gold_platform.api import run_server


if __name__ == "__main__":
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    print("🪙 Starting Gold Platform Core...")
    print("💱 Currencies: USD, EUR, GBP, EGP, SAR")
    print("🔒 Audit trail active" if config.enable_audit_logging else "⚠️  Audit trail disabled")
    print(f"🌐 API available at: http://localhost:{config.api_port}")
    print(f"📚 Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            debug=False  # Set to True for development
        )
    except KeyboardInterrupt:
        print("\n👋 Shutting down Gold Platform Core...")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)
