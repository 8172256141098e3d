import uvicorn
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from appointly.core.config import API_HOST, API_PORT, APP_ENV

if __name__ == "__main__":
    uvicorn.run(
        "appointly.main:app",
        host=API_HOST,
        port=API_PORT,
        reload=APP_ENV == "development"
    )
