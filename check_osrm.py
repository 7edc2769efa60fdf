#!/usr/bin/env python3
"""Verify OSRM connectivity and the distance oracle built on top of it."""

import sys
from pathlib import Path

# Add src to path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root / "src"))

from ride_router.config import settings
from ride_router.models.domain import Coordinates
from ride_router.services.distance.oracle import OSRMDistanceOracle
from ride_router.services.distance.osrm_client import OSRMClient, check_health


def main():
    print("=" * 60)
    print("OSRM Connection Test")
    print("=" * 60)
    print()

    print("1. Checking OSRM configuration...")
    if not settings.osrm_base_url:
        print("   [ERROR] OSRM base URL is not configured")
        print("   Please set RHR_OSRM_BASE_URL in your .env file")
        return 1
    print(f"   [OK] OSRM Base URL: {settings.osrm_base_url}")
    print(f"   [OK] OSRM Profile: {settings.osrm_profile}")
    print()

    print("2. Testing OSRM health check...")
    if not check_health():
        print("   [ERROR] OSRM service is not responding")
        return 1
    print("   [OK] OSRM service is healthy and accessible!")
    print()

    print("3. Testing distance oracle...")
    try:
        oracle = OSRMDistanceOracle(OSRMClient())
        points = [
            Coordinates(52.517037, 13.388860),  # Berlin, Germany
            Coordinates(52.496891, 13.385983),
            Coordinates(52.520008, 13.404954),
        ]
        matrix = oracle.get_distance_matrix(points)
        sample = matrix[0][1]
        print(f"   [OK] Received {len(matrix)}x{len(matrix[0])} matrix")
        print(f"   [OK] Sample: {sample.distance_meters:.0f} m, {sample.duration_secs:.0f} s")
    except Exception as e:
        print(f"   [ERROR] Error during table request: {e}")
        return 1
    print()

    print("=" * 60)
    print("[SUCCESS] OSRM is connected and working!")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
