from django.urls import path
from . import views

urlpatterns = [
    path('tables/', views.TableListView.as_view(), name='tables'),
    path('tables/<int:table_id>/', views.TableDetailView.as_view(), name='table_detail'),
    path('tables/<int:table_id>/status/', views.TableStatusView.as_view(), name='table_status'),
    path('orders/', views.OrderListView.as_view(), name='orders'),
    path('orders/<int:order_id>/', views.OrderDetailView.as_view(), name='order_detail'),
    path('orders/<int:order_id>/note/', views.OrderNoteView.as_view(), name='order_note'),
    path('orders/<int:order_id>/items/<int:item_id>/status/', views.ItemStatusView.as_view(), name='item_status'),
    path('orders/<int:order_id>/items/<int:item_id>/serve/', views.ServeItemView.as_view(), name='serve_item'),
    path('orders/<int:order_id>/mark_ready/', views.MarkReadyView.as_view(), name='mark_ready'),
    path('orders/<int:order_id>/move_table/', views.MoveTableView.as_view(), name='move_table'),
    path('orders/<int:order_id>/merge_table/', views.MergeTableView.as_view(), name='merge_table'),
    path('orders/<int:order_id>/unmerge_table/', views.UnmergeTableView.as_view(), name='unmerge_table'),
    path('orders/<int:order_id>/close/', views.CloseOrderView.as_view(), name='close_order'),
]
