from brpf import create_app

app = create_app()
