# Options configuration for hmat


class HMatOpt:

    __defaults = {
        # env opt
        "debug": False,

        # cluster tree opt
        "leaf_size": 16,
        "eta": 2.0,

        # compression opt
        "tol": 1e-5,
        "min_size": 1024,
        "svd_k0": 40,
        "aca_max_rank": None,

        # execution opt
        "num_workers": 1,
    }
    __conf = dict(__defaults)
    __setters = list(__conf.keys())

    @staticmethod
    def check_consistency():
        tol = HMatOpt.__conf['tol']
        if not (0 <= tol < 1):
            raise ValueError('tol should satisfy 0 <= tol < 1 (got %s)' % tol)

        if HMatOpt.__conf['leaf_size'] < 1:
            raise ValueError('leaf_size should be a positive integer')

        if HMatOpt.__conf['eta'] <= 0:
            raise ValueError('eta should be positive')

        if HMatOpt.__conf['num_workers'] < 1:
            raise ValueError('num_workers should be a positive integer')

    @staticmethod
    def get(name):
        return HMatOpt.__conf[name]

    @staticmethod
    def set(name, value):
        if name not in HMatOpt.__setters:
            raise KeyError('unknown option "%s"' % name)
        old_value = HMatOpt.__conf[name]
        HMatOpt.__conf[name] = value
        try:
            HMatOpt.check_consistency()
        except Exception:
            HMatOpt.__conf[name] = old_value
            raise

    @staticmethod
    def reset():
        HMatOpt.__conf = dict(HMatOpt.__defaults)

    @staticmethod
    def get_or_default(name, value):
        '''Return value unless it is None, in which case return the
        current setting of option name.'''
        return HMatOpt.__conf[name] if value is None else value
