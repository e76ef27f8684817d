# module rimaqr.app
from rimaqr.app_setup.factory import create_app

# App globale
app = create_app()
