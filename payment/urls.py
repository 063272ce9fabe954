from django.urls import path
from . import views

urlpatterns = [
    path('orders/<int:order_id>/payments/', views.AddPaymentView.as_view(), name='add_payment'),
    path('orders/<int:order_id>/request_bill/', views.RequestBillView.as_view(), name='request_bill'),
    path('orders/<int:order_id>/confirm_payment/', views.ConfirmPaymentView.as_view(), name='confirm_payment'),
    path('orders/<int:order_id>/discount/', views.DiscountView.as_view(), name='order_discount'),
    path(
        'orders/<int:order_id>/items/<int:item_id>/complimentary/',
        views.ComplimentaryView.as_view(),
        name='item_complimentary'
    ),
]
