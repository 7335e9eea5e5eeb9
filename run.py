"""QuoteLedger Application Entry Point"""
import os

from dotenv import load_dotenv
load_dotenv()

from app import create_app
from config.config import DevelopmentConfig, ProductionConfig

config_class = DevelopmentConfig if os.getenv('FLASK_ENV', 'development') == 'development' else ProductionConfig
app = create_app(config_class)

if __name__ == '__main__':
    port = int(os.getenv('PORT', 5000))
    app.run(debug=app.config.get('DEBUG', False), host='0.0.0.0', port=port)
