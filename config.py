"""
UTM Simulator Configuration
Defines the external endpoint, simulation policy and mock fleet parameters
"""

import os

# ============================================================================
# EXTERNAL ENDPOINT
# ============================================================================
# Base URL of the route-permission authority / blockchain backend

ENDPOINT_URL = os.getenv("ENDPOINT_URL", "http://localhost:3001")
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "10"))  # seconds, total per request

# Identities used for operator registration and route logs
OPERATOR = os.getenv("OPERATOR", "mock-operator")
OPERATOR_ADDRESS = os.getenv("OPERATOR_ADDRESS", "0x0000000000000000000000000000000000000001")
ADMIN_ADDRESS = os.getenv("ADMIN_ADDRESS", "0x0000000000000000000000000000000000000002")

# ============================================================================
# SIMULATION SCHEDULE
# ============================================================================

SIMULATION_ENABLED = os.getenv("SIMULATION_ENABLED", "true").lower() in ("1", "true", "yes")

AUTHORIZATION_INTERVAL = 60.0  # seconds between authorization ticks
TELEMETRY_INTERVAL = 30.0      # seconds between telemetry ticks

AUTHORIZATION_ATTEMPTS_PER_TICK = 3
VALID_ATTEMPTS_PER_TICK = 2    # first N attempts use a compliant route

TELEMETRY_STEPS_PER_TICK = 40
TELEMETRY_STEP_DELAY = 1.0     # seconds between telemetry steps
VIOLATION_EVERY_N_STEPS = 30
LOCATION_HISTORY_LIMIT = 10000  # most recent telemetry samples kept in memory

# Offset applied to the current waypoint when faking off-route telemetry
VIOLATION_OFFSET = {
    'latitude': 0.1,
    'longitude': 0.1,
    'altitude': 100.0,
}

FLIGHT_PLAN_DURATION = 30 * 60  # seconds

# ============================================================================
# MOCK ROUTE GENERATION
# ============================================================================

ROUTE_MIN_POINTS = 30
ROUTE_MAX_POINTS = 50
ROUTE_STEP_MAX_KM = 1.0          # max distance between consecutive points
ROUTE_ALTITUDE_DRIFT = 5.0       # meters, +/- per point
INVALID_ALTITUDE_JUMP = 200.0    # meters above the highest known zone ceiling
POINT_SAMPLING_ATTEMPTS = 10000  # rejection sampling tries inside a polygon

# Used when no matching active zone exists
FALLBACK_REGION = {
    'min_lat': 40.7,
    'max_lat': 40.8,
    'min_lon': -74.0,
    'max_lon': -73.9,
    'min_alt': 100.0,
    'max_alt': 150.0,
}

# ============================================================================
# MOCK FLEET
# ============================================================================

MOCK_OPERATOR = {
    'name': 'Mock Operator',
    'contact_email': 'mock.operator@example.com',
    'country': 'US',
    'tax_ids': [{'type': 'Other', 'value': '12-3456789'}],
}

MOCK_DRONES = [
    {
        'model': 'Mock Drone Model',
        'drone_type': 'MEDICAL',
        'cert_hashes': ['cert-hash-1', 'cert-hash-2'],
        'permitted_zones': ['URBAN', 'RURAL'],
        'serial_prefix': 'MOCK-DRONE-001',
        'maintenance_hash': 'maintenance-hash-1',
    },
    {
        'model': 'Mock Drone Model 2',
        'drone_type': 'AGRICULTURAL',
        'cert_hashes': ['cert-hash-3'],
        'permitted_zones': ['URBAN', 'RURAL'],
        'serial_prefix': 'MOCK-DRONE-002',
        'maintenance_hash': 'maintenance-hash-2',
    },
    {
        'model': 'Mock Drone Model 3',
        'drone_type': 'MEDICAL',
        'cert_hashes': ['cert-hash-4'],
        'permitted_zones': ['URBAN', 'RURAL'],
        'serial_prefix': 'MOCK-DRONE-003',
        'maintenance_hash': 'maintenance-hash-3',
    },
]

# ============================================================================
# API CONFIGURATION
# ============================================================================

API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", "3000"))
CORS_ORIGINS = ["*"]  # Allow all origins for development

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
