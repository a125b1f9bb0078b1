#!/usr/bin/env python3
"""
Simple launcher for the Client Collections Portal
Double-click this file to start the web interface
"""

import os
import subprocess
import sys
from pathlib import Path

PORT = os.environ.get("PORTAL_PORT", "8501")

def build_command(app_file, python=sys.executable, port=PORT):
    return [
        str(python), "-m", "streamlit", "run", str(app_file),
        "--browser.gatherUsageStats", "false",
        "--server.address", "localhost",
        "--server.port", str(port),
    ]

def main():
    """Launch the Streamlit portal"""
    print("🚀 Starting Client Collections Portal...")
    print("=" * 50)

    script_dir = Path(__file__).parent
    app_file = script_dir / "streamlit_app.py"

    if not app_file.exists():
        print(f"❌ Streamlit app not found: {app_file}")
        return 1

    print(f"📁 Store file: {os.environ.get('PORTAL_STORE_PATH', 'portal_store.json')}")
    print(f"📍 App will be available at: http://localhost:{PORT}")
    print()
    print("💡 To stop the server, press Ctrl+C in the terminal")
    print("=" * 50)

    try:
        subprocess.run(build_command(app_file), cwd=script_dir, check=True)
    except KeyboardInterrupt:
        print("\n👋 Stopping server...")
    except subprocess.CalledProcessError as e:
        print(f"\n❌ Error running app: {e}")
        return 1
    return 0

if __name__ == "__main__":
    sys.exit(main())
