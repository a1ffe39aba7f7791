import uvicorn
from dotenv import load_dotenv
from clinic_gateway.config.settings import GatewaySettings
from clinic_gateway.core.factory import build_gateway
from clinic_gateway.core.logging_setup import configure_logging

# Load environment variables from .env file
load_dotenv()
settings = GatewaySettings.from_env()
configure_logging(settings.effective_log_level)

app = build_gateway(settings)

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_config=None)
