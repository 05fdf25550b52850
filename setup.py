from setuptools import setup, find_packages

setup(
    name='pointforest',
    version='1.0',
    packages=find_packages(exclude=['tests', 'experiments']),
    py_modules=[
        'errors',
        'evaluation',
        'forest',
        'forest_params',
        'model_codec',
        'split_generators',
        'split_search',
        'splitters',
        'tree_builder',
    ],
    description='Randomized decision forests for multi-scale point feature classification',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    python_requires='>=3.9',
    install_requires=[
        'numpy>=1.22',
        'joblib>=1.2',
    ],
    extras_require={
        'test': ['pytest>=7.0'],
    },
)
