"""Local development entry point.

Usage:
    python run.py

Hosted sites can be tried locally at http://<subdomain>.localhost:5001/
(most browsers resolve *.localhost to 127.0.0.1).
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before anything else

from sitehost import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=5001)
