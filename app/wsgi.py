from app.classifieds import create_app

app = create_app()
