from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import OrderViewSet
from .webhooks import NdrWebhook, ShipmentUpdateWebhook

router = DefaultRouter()
router.register(r'orders', OrderViewSet, basename='order')

urlpatterns = [
    path('', include(router.urls)),
]

webhook_urlpatterns = [
    path('shipping-updates/', ShipmentUpdateWebhook.as_view(), name='webhook-shipping-updates'),
    path('ndr-updates/', NdrWebhook.as_view(), name='webhook-ndr-updates'),
]
