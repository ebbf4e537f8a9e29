from fastapi import FastAPI

from services.shipping_label_service.main import shipping_label_app

app = FastAPI(title="VintStreet Fulfilment")

app.mount("/shipping", shipping_label_app)
