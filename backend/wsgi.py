# backend/wsgi.py
from freight_billing import create_app

app = create_app()
