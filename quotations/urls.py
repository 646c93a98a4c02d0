from django.urls import path

from . import views

app_name = "quotations"

urlpatterns = [
    path("", views.home_redirect, name="home"),
    path("quotes/new/", views.new_quote, name="new_quote"),
    path("quotes/chargeable-weight/", views.chargeable_weight_preview, name="chargeable_weight_preview"),
    path("quotes/<int:quote_id>/", views.quote_result, name="quote_result"),
    path("quotes/history/", views.quote_history, name="quote_history"),
    path("customers/", views.customer_list, name="customer_list"),
    path("customers/<int:customer_id>/edit/", views.customer_edit, name="customer_edit"),
    path("control-panel/rates/", views.admin_rates, name="admin_rates"),
]
