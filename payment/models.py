from django.db import models
from floor.models import Order


class PaymentLine(models.Model):
	CASH = 'CASH'
	CARD = 'CARD'
	MEAL_CARD = 'MEAL_CARD'
	METHOD_CHOICES = [
		(CASH, 'Cash'),
		(CARD, 'Card'),
		(MEAL_CARD, 'Meal card'),
	]

	order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='payments')
	method = models.CharField(max_length=20, choices=METHOD_CHOICES)
	amount = models.DecimalField(max_digits=10, decimal_places=2)
	created_at = models.DateTimeField(auto_now_add=True)
	created_by_user_id = models.CharField(max_length=64)

	class Meta:
		ordering = ['id']

	def __str__(self):
		return f"Payment {self.id} for Order {self.order_id} - {self.method} {self.amount}"
