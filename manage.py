from invoicedesk import create_app
from invoicedesk.models import Setting  # noqa: F401

app = create_app()


if __name__ == '__main__':
    app.run()
