import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from rentalbiz import create_app  # noqa: E402

app = create_app()

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port, debug=False)
