# backend/wsgi.py
from dealerdesk import create_app

app = create_app()
