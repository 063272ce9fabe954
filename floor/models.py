from django.db import models


class Tenant(models.Model):
	name = models.CharField(max_length=100)
	# Per-role permission overrides: {"WAITER": {"ORDER_CLOSE": false}, ...}
	permissions = models.JSONField(default=dict, blank=True)

	def __str__(self):
		return self.name


class Table(models.Model):
	FREE = 'FREE'
	OCCUPIED = 'OCCUPIED'
	CLOSED = 'CLOSED'
	STATUS_CHOICES = [
		(FREE, 'Free'),
		(OCCUPIED, 'Occupied'),
		(CLOSED, 'Closed'),
	]

	tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name='tables')
	name = models.CharField(max_length=50)
	status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=FREE)
	customer_id = models.CharField(max_length=64, blank=True, null=True)
	note = models.TextField(blank=True, null=True)

	class Meta:
		ordering = ['name']

	def __str__(self):
		return f"{self.name} ({self.status})"


class MenuItem(models.Model):
	HOT = 'HOT'
	COLD = 'COLD'
	DESSERT = 'DESSERT'
	BAR = 'BAR'
	STATION_CHOICES = [
		(HOT, 'Hot'),
		(COLD, 'Cold'),
		(DESSERT, 'Dessert'),
		(BAR, 'Bar'),
	]

	tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name='menu_items')
	name = models.CharField(max_length=100)
	price = models.DecimalField(max_digits=10, decimal_places=2)
	station = models.CharField(max_length=10, choices=STATION_CHOICES, default=HOT)
	is_available = models.BooleanField(default=True)

	def __str__(self):
		return self.name


class Order(models.Model):
	NEW = 'NEW'
	READY = 'READY'
	SERVED = 'SERVED'
	CLOSED = 'CLOSED'
	STATUS_CHOICES = [
		(NEW, 'New'),
		(READY, 'Ready'),
		(SERVED, 'Served'),
		(CLOSED, 'Closed'),
	]

	UNPAID = 'UNPAID'
	PARTIALLY_PAID = 'PARTIALLY_PAID'
	PAID = 'PAID'
	PAYMENT_STATUS_CHOICES = [
		(UNPAID, 'Unpaid'),
		(PARTIALLY_PAID, 'Partially paid'),
		(PAID, 'Paid'),
	]

	BILLING_OPEN = 'OPEN'
	BILL_REQUESTED = 'BILL_REQUESTED'
	BILLING_PAID = 'PAID'
	BILLING_STATUS_CHOICES = [
		(BILLING_OPEN, 'Open'),
		(BILL_REQUESTED, 'Bill requested'),
		(BILLING_PAID, 'Paid'),
	]

	PERCENT = 'PERCENT'
	AMOUNT = 'AMOUNT'
	DISCOUNT_TYPE_CHOICES = [
		(PERCENT, 'Percent'),
		(AMOUNT, 'Amount'),
	]

	tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name='orders')
	table = models.ForeignKey(Table, on_delete=models.RESTRICT, related_name='orders')
	linked_tables = models.ManyToManyField(Table, related_name='linked_orders', blank=True)
	waiter_id = models.CharField(max_length=64)
	customer_id = models.CharField(max_length=64, blank=True, null=True)
	status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=NEW)
	note = models.TextField(blank=True, null=True)

	# Discount value object, replaced wholesale on every write
	discount_type = models.CharField(max_length=10, choices=DISCOUNT_TYPE_CHOICES, blank=True, null=True)
	discount_value = models.DecimalField(max_digits=10, decimal_places=2, blank=True, null=True)
	discount_updated_at = models.DateTimeField(blank=True, null=True)
	discount_updated_by = models.CharField(max_length=64, blank=True, null=True)

	# Cached derivations, rebuilt in the transaction that changes their inputs
	payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default=UNPAID)
	billing_status = models.CharField(max_length=20, choices=BILLING_STATUS_CHOICES, default=BILLING_OPEN)

	bill_requested_at = models.DateTimeField(blank=True, null=True)
	bill_requested_by = models.CharField(max_length=64, blank=True, null=True)
	payment_confirmed_at = models.DateTimeField(blank=True, null=True)
	payment_confirmed_by = models.CharField(max_length=64, blank=True, null=True)
	order_closed_at = models.DateTimeField(blank=True, null=True)
	order_closed_by = models.CharField(max_length=64, blank=True, null=True)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	class Meta:
		ordering = ['-created_at', '-id']
		indexes = [
			models.Index(fields=['tenant', 'status'], name='floor_order_tenant_status_idx'),
		]

	def __str__(self):
		return f"Order {self.id} (Table {self.table_id}) - {self.status}"

	@property
	def is_closed(self):
		return self.status == self.CLOSED

	@property
	def discount(self):
		if self.discount_type is None:
			return None
		return {
			'type': self.discount_type,
			'value': self.discount_value,
			'updated_at': self.discount_updated_at,
			'updated_by_user_id': self.discount_updated_by,
		}


class OrderItem(models.Model):
	NEW = 'NEW'
	IN_PREPARATION = 'IN_PREPARATION'
	READY = 'READY'
	SERVED = 'SERVED'
	CANCELED = 'CANCELED'
	# Kept for compatibility with stored data; no operation moves an item here
	CLOSED = 'CLOSED'
	STATUS_CHOICES = [
		(NEW, 'New'),
		(IN_PREPARATION, 'In preparation'),
		(READY, 'Ready'),
		(SERVED, 'Served'),
		(CANCELED, 'Canceled'),
		(CLOSED, 'Closed'),
	]

	order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
	menu_item = models.ForeignKey(MenuItem, on_delete=models.RESTRICT, related_name='order_items')
	variant_id = models.CharField(max_length=64, blank=True, null=True)
	modifier_option_ids = models.JSONField(default=list, blank=True)
	unit_price = models.DecimalField(max_digits=10, decimal_places=2)
	quantity = models.PositiveIntegerField()
	note = models.TextField(blank=True, default='')
	status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=NEW)
	is_complimentary = models.BooleanField(default=False)
	created_at = models.DateTimeField(auto_now_add=True)

	class Meta:
		ordering = ['id']

	def __str__(self):
		return f"{self.quantity} x {self.menu_item.name} for Order {self.order_id}"
