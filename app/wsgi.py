from app.dataroom import create_app

app = create_app()
