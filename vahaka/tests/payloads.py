"""
Sample request payloads shared by the tests.
"""

DRIVER_PROFILE = {
    "name": "Asha Rao",
    "phone": "+919800000001",
    "email": "asha@example.com",
    "experience": 4,
    "vehicle": {
        "make": "Maruti",
        "model": "Dzire",
        "year": 2021,
        "color": "White",
        "plateNumber": "KA01AB1234"
    },
    "license": {
        "number": "DL-0420110012345",
        "expiryDate": "2030-05-01"
    }
}

PICKUP = {"latitude": 12.9716, "longitude": 77.5946, "address": "MG Road"}
DESTINATION = {"latitude": 12.9352, "longitude": 77.6245, "address": "Koramangala"}
