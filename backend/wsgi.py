from worktime import create_app

app = create_app()
