#!/usr/bin/env python3
"""CLI tool to generate API keys for front-desk clients and integrations."""
import sys

from agenda.auth import APIKeyManager
from agenda.database import get_database


def main():
    """Generate API key for a principal."""
    if len(sys.argv) < 2:
        print("Usage: python scripts/generate_api_key.py <principal> [description]")
        print("\nExample:")
        print("  python scripts/generate_api_key.py front-desk 'Reception PC'")
        sys.exit(1)

    principal = sys.argv[1]
    description = sys.argv[2] if len(sys.argv) > 2 else None

    manager = APIKeyManager(get_database())
    api_key = manager.generate_api_key(principal, description)

    print(f"\n✅ API Key generated for: {principal}")
    if description:
        print(f"   Description: {description}")
    print(f"\n🔑 API Key: {api_key}")
    print("\n⚠️  IMPORTANT: Save this key securely! It cannot be retrieved later.")
    print("\n📋 Usage Example:")
    print("  curl -X POST http://localhost:8000/api/v1/appointments \\")
    print(f"    -H 'X-API-Key: {api_key}' \\")
    print("    -H 'Content-Type: application/json' \\")
    print("    -d '{\"patientId\": 1, \"date\": \"2024-01-08\", \"time\": \"09:00\"}'\n")


if __name__ == "__main__":
    main()
