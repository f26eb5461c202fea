import logging

from .app import create_app

app = create_app()
logging.basicConfig(level=app.config['LOG_LEVEL'])
app.logger.info("Starting QA Hub application...")
app.run(debug=True, port=5001)
