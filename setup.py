from setuptools import setup

DISTNAME = 'python-hmat'

setup(
    name=DISTNAME,
    version='0.1.0',
    packages=['hmat'],
    package_dir={'': 'src'},
    python_requires='>=3.7',
    install_requires=[
        'numpy',
        'scipy',
        'scikit-learn',
        'cached-property',
    ],
    extras_require={
        'dot': ['graphviz'],
        'test': ['pytest'],
    },
)
