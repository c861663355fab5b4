USER_ROLES = {
    "PROJECT_DEVELOPER": "project_developer",
    "CREDIT_BUYER": "credit_buyer",
    "REGULATORY_BODY": "regulatory_body",
}

PROJECT_TYPES = (
    "renewable_energy",
    "afforestation",
    "energy_efficiency",
    "waste_management",
    "transportation",
    "industrial",
)

INSPECTION_RESULTS = ("passed", "failed", "partial")

FILE_UPLOAD = {
    "MAX_SIZE": 50 * 1024 * 1024,
    "ALLOWED_TYPES": (
        "application/pdf",
        "image/jpeg",
        "image/png",
        "text/csv",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-excel",
    ),
    "MAX_FILES": 10,
}

VALIDATION = {
    "PROJECT_NAME_MIN_LENGTH": 3,
    "PROJECT_DESCRIPTION_MIN_LENGTH": 10,
    "ORGANIZATION_MIN_LENGTH": 2,
    "NOTES_MAX_LENGTH": 1000,
}

MESSAGES = {
    "UNAUTHORIZED": "Access denied. Authentication required.",
    "FORBIDDEN": "Access denied. Insufficient permissions.",
    "SERVER_ERROR": "Internal server error",
    "VALIDATION_ERROR": "Validation errors",
    "FILE_UPLOAD_ERROR": "File upload failed",
    "BLOCKCHAIN_ERROR": "Blockchain operation failed",
}

ETH_ADDRESS_PATTERN = r"^0x[a-fA-F0-9]{40}$"
