class FlyerError(Exception):
    pass


class FlyerNotFoundError(FlyerError):
    pass


class FlyerBudgetMissingError(FlyerError):
    """The flyer document carries no usable targetBudget.budget."""
