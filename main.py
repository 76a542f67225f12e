import json
import logging
import os

import firebase_admin
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from firebase_admin import credentials

from clinic_api.common.logging_config import setup_logging

load_dotenv()
setup_logging()

logger = logging.getLogger("clinic_api")

# Load Firebase credentials
# Priority: FIREBASE_CREDENTIALS_JSON_CONTENT env var (for production)
# Fallback: Local JSON file named by FIREBASE_CREDENTIALS_FILE (for local development)
firebase_cred_json_content = os.environ.get('FIREBASE_CREDENTIALS_JSON_CONTENT')

if firebase_cred_json_content:
    try:
        cred_dict = json.loads(firebase_cred_json_content)
        cred = credentials.Certificate(cred_dict)
        logger.info("Initialized Firebase from FIREBASE_CREDENTIALS_JSON_CONTENT env var.")
    except json.JSONDecodeError as e:
        logger.critical("FIREBASE_CREDENTIALS_JSON_CONTENT is set but contains invalid JSON: %s", e)
        raise
    except Exception as e:
        logger.critical("Failed to initialize Firebase from FIREBASE_CREDENTIALS_JSON_CONTENT: %s", e)
        raise
else:
    # FIREBASE_CREDENTIALS_JSON_CONTENT is not set, so assume local development
    # and use the local service account key file.
    local_cred_file = os.environ.get('FIREBASE_CREDENTIALS_FILE', 'firebase-adminsdk.json')
    try:
        cred = credentials.Certificate(local_cred_file)
        logger.info("Initialized Firebase from local JSON file: %s", local_cred_file)
    except FileNotFoundError:
        logger.critical("Local credentials file '%s' not found. It is required when "
                        "FIREBASE_CREDENTIALS_JSON_CONTENT is not set.", local_cred_file)
        raise
    except Exception as e:
        logger.critical("Failed to initialize Firebase from local file '%s': %s", local_cred_file, e)
        raise

firebase_admin.initialize_app(cred)

app = FastAPI(title="Clinic API")

from clinic_api.patients.routers import router as patients_router
from clinic_api.inventory.routers import router as inventory_router
from clinic_api.professionals.routers import router as professionals_router
from clinic_api.sales.routers import router as sales_router
from clinic_api.finance.routers import router as finance_router
from clinic_api.reports.routers import router as reports_router

app.include_router(patients_router, prefix="/patients", tags=["patients"])
app.include_router(inventory_router, prefix="/inventory", tags=["inventory"])
app.include_router(professionals_router, prefix="/professionals", tags=["professionals"])
app.include_router(sales_router, prefix="/sales", tags=["sales"])
app.include_router(finance_router, prefix="/finance", tags=["finance"])
app.include_router(reports_router, prefix="/reports", tags=["reports"])


@app.get("/")
def read_root():
    """Root endpoint for the API.
    Returns:
        A simple message indicating the API is running.
    """
    return {"message": "Clinic API"}


if __name__ == "__main__":
    # Set port from environment variable or default to 8000
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", 8000)))
