from __future__ import annotations

from dataclasses import dataclass

from .config import BusinessConfig
from .repositories.assignment_repo import SalesAssignmentRepository, TechnicianAssignmentRepository
from .repositories.commission_repo import CommissionRepository
from .repositories.notification_repo import NotificationRepository
from .repositories.order_item_repo import OrderItemRepository
from .repositories.order_product_repo import OrderProductRepository
from .repositories.order_repo import OrderRepository
from .repositories.product_service_repo import ProductServiceRepository
from .repositories.status_log_repo import StatusLogRepository
from .repositories.step_repo import StepRepository
from .repositories.user_repo import UserRepository
from .services.assignment_service import AssignmentManager
from .services.commission_service import CommissionRecorder
from .services.completion_service import OrderCompletionEvaluator
from .services.item_resolver import LineItemResolver
from .services.notifier import Notifier
from .services.status_service import ItemStatusMachine


@dataclass(frozen=True)
class Repositories:
    orders: OrderRepository
    order_items: OrderItemRepository
    order_products: OrderProductRepository
    product_services: ProductServiceRepository
    technicians: TechnicianAssignmentRepository
    sales: SalesAssignmentRepository
    steps: StepRepository
    users: UserRepository
    commissions: CommissionRepository
    status_log: StatusLogRepository
    notifications: NotificationRepository

    @classmethod
    def postgres(cls) -> "Repositories":
        return cls(
            orders=OrderRepository(),
            order_items=OrderItemRepository(),
            order_products=OrderProductRepository(),
            product_services=ProductServiceRepository(),
            technicians=TechnicianAssignmentRepository(),
            sales=SalesAssignmentRepository(),
            steps=StepRepository(),
            users=UserRepository(),
            commissions=CommissionRepository(),
            status_log=StatusLogRepository(),
            notifications=NotificationRepository(),
        )


@dataclass(frozen=True)
class Services:
    repos: Repositories
    resolver: LineItemResolver
    notifier: Notifier
    recorder: CommissionRecorder
    evaluator: OrderCompletionEvaluator
    status: ItemStatusMachine
    assignments: AssignmentManager


def build_services(repos: Repositories, business: BusinessConfig | None = None) -> Services:
    business = business or BusinessConfig()

    resolver = LineItemResolver(
        order_item_repo=repos.order_items,
        product_service_repo=repos.product_services,
        order_product_repo=repos.order_products,
    )
    notifier = Notifier(notification_repo=repos.notifications, user_repo=repos.users)
    recorder = CommissionRecorder(
        order_repo=repos.orders,
        commission_repo=repos.commissions,
        user_repo=repos.users,
        technician_repo=repos.technicians,
        resolver=resolver,
        default_sales_percent=business.default_sales_commission_percent,
    )
    evaluator = OrderCompletionEvaluator(
        order_repo=repos.orders,
        step_repo=repos.steps,
        resolver=resolver,
        recorder=recorder,
        notifier=notifier,
    )
    status = ItemStatusMachine(
        resolver=resolver,
        order_repo=repos.orders,
        step_repo=repos.steps,
        status_log_repo=repos.status_log,
        notifier=notifier,
        evaluator=evaluator,
        approval_roles=business.approval_roles,
    )
    assignments = AssignmentManager(
        resolver=resolver,
        order_repo=repos.orders,
        technician_repo=repos.technicians,
        sales_repo=repos.sales,
        status_log_repo=repos.status_log,
        recorder=recorder,
    )
    return Services(
        repos=repos,
        resolver=resolver,
        notifier=notifier,
        recorder=recorder,
        evaluator=evaluator,
        status=status,
        assignments=assignments,
    )
